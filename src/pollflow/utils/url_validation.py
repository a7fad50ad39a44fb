# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from ipaddress import ip_address
from logging import critical, info
from urllib.parse import urlparse

import validators
from validators import domain


def is_url_safe(url: str) -> bool:
    """
    Refuse URLs with an IP address or localhost in the domain section (SSRF mitigation).
    """
    url_object = urlparse(url)
    host = url_object.netloc.split(":")[0] if url_object.port is not None else url_object.netloc
    try:
        if host.lower() == "localhost":
            critical("Potential SSRF attack by providing an localhost in URL.")
            return False
        elif ip_address(host):
            critical("Potential SSRF attack by providing an IP address in URL.")
            return False
    except ValueError:
        if domain(host):
            info("SSRF validation: Domain in " + url + " is valid.")
            return True
        else:
            critical("SSRF validation: invalid domain name")
            return False
    return False


def validate_url(url: str) -> str:
    """Returns the url back if it is a well-formed, non-local http(s) URL, raises ValueError otherwise."""
    if not isinstance(url, str) or len(url) == 0:
        raise ValueError(f"Invalid URL: {url!r}")
    if not validators.url(url) or not is_url_safe(url):
        raise ValueError(f"Invalid URL: {url!r}")
    return url
