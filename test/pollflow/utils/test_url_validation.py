# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import pytest

from pollflow.utils.url_validation import is_url_safe, validate_url


class TestUrlValidation:
    def test_is_url_safe(self):
        assert is_url_safe("http://google.com")
        assert is_url_safe("https://sqs.us-east-1.amazonaws.com/123456789012/queue")
        assert not is_url_safe("http://127.0.0.1")
        assert not is_url_safe("http://169.254.169.254:80")
        assert not is_url_safe("http://localhost:80")
        assert not is_url_safe("http://0x7f.0x0.0x0.0x1")

    def test_validate_url(self):
        url = "https://sqs.us-east-1.amazonaws.com/123456789012/queue"
        assert validate_url(url) == url
        for invalid in [None, "", "queue", "http://127.0.0.1/queue", "http://localhost/queue"]:
            with pytest.raises(ValueError):
                validate_url(invalid)
