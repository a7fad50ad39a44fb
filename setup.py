# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from setuptools import find_packages, setup
from src.pollflow import __version__ as version

cmdclass_value = {}
options_value = {}

REQUIRED_PACKAGES = [
    'boto3 >= 1.34.0',
    'python-dateutil >= 2.9.0',
    'shortuuid >= 1.0.13',
    'overrides >= 3.1.0',
    'validators >= 0.22.0',
]

TEST_PACKAGES = [
    'moto >= 5.0.0',
    'pytest',
    'mock'
]

setup(
    name="pollflow",
    python_requires=">=3.10",
    version=version,
    description="pollflow turns polled AWS resources (S3, SQS, Elastic Transcoder, MediaConvert) into events and "
                "fans payloads out to Lambda with bounded concurrency.",
    keywords="aws cloud event polling watcher s3 sqs sns lambda mediaconvert elastic-transcoder dynamodb",
    author="Amazon.com Inc.",
    license="Apache 2.0",

    packages=find_packages(where="src", exclude=("test",)),
    package_dir={"": "src"},
    install_requires=REQUIRED_PACKAGES,
    tests_require=TEST_PACKAGES,
    extras_require={"test": TEST_PACKAGES},
    test_suite='test',

    include_package_data=True,

    options=options_value,
    cmdclass=cmdclass_value,
)
