"""Tests for sitepulse.services.user_agent."""

import pytest

from sitepulse.services.user_agent import describe_user_agent

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0.2210.91"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
SAFARI_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
CHROME_ANDROID = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.144 Mobile Safari/537.36"
)


@pytest.mark.parametrize(
    "ua, expected",
    [
        (CHROME_WINDOWS, ("Chrome 120", "Windows 10")),
        (EDGE_WINDOWS, ("Edge 120", "Windows 10")),
        (SAFARI_IPHONE, ("Safari 17", "iOS 17")),
        (SAFARI_MAC, ("Safari 17", "macOS 10.15")),
        (FIREFOX_LINUX, ("Firefox 121", "Linux")),
        (CHROME_ANDROID, ("Chrome 120", "Android 14")),
        ("curl/8.4.0", ("curl 8", "Unknown OS")),
    ],
)
def test_describe_user_agent(ua, expected):
    assert describe_user_agent(ua) == expected


@pytest.mark.parametrize("ua", [None, "", "SomethingElse/1.0"])
def test_unknown(ua):
    browser, os_name = describe_user_agent(ua)
    assert browser == "Unknown Browser"
    assert os_name == "Unknown OS"
