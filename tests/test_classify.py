from __future__ import annotations

import pytest

from npmx_connector.core.classify import (
    AUTH_MESSAGE,
    OTP_MESSAGE,
    Classification,
    classify,
    display_message,
    filter_noise,
    matches,
)


@pytest.mark.parametrize(
    "stderr",
    [
        "npm ERR! code EOTP",
        "This operation requires a one-time password from your authenticator.",
        "npm error You can provide a one-time password by passing --otp=<code> to the command",
        "npm ERR! one-time PASSWORD required",
    ],
)
def test_otp_diagnostics(stderr):
    assert classify(stderr) is Classification.OTP
    assert display_message(stderr) == OTP_MESSAGE


@pytest.mark.parametrize(
    "stderr",
    [
        "npm ERR! code ENEEDAUTH",
        "npm ERR! You must be logged in to publish packages.",
        "npm error code E401",
        "npm ERR! 403 Forbidden - PUT https://registry.npmjs.org/-/team/acme/devs",
        "npm ERR! need auth: you need to run `npm adduser`",
        "npm ERR! Unable to authenticate, need: Basic realm",
    ],
)
def test_auth_diagnostics(stderr):
    assert classify(stderr) is Classification.AUTH
    assert display_message(stderr) == AUTH_MESSAGE


def test_otp_wins_when_both_match():
    stderr = "npm ERR! code EOTP\nnpm ERR! 401 Unauthorized"
    assert matches(stderr) == {Classification.OTP, Classification.AUTH}
    assert classify(stderr) is Classification.OTP
    assert display_message(stderr) == OTP_MESSAGE


def test_unclassified_message_is_filtered():
    stderr = (
        "npm warn config production Use `--omit=dev` instead.\n"
        "npm ERR! 404 Not Found - team not found\n"
        "NPM WARN deprecated thing\n"
    )
    assert classify(stderr) is Classification.NONE
    assert matches(stderr) == set()
    assert display_message(stderr) == "npm ERR! 404 Not Found - team not found"


def test_filter_noise_only_drops_warning_lines():
    text = "  npm warn indented lines are kept\nnpm warn dropped\nreal output\n"
    assert filter_noise(text) == "npm warn indented lines are kept\nreal output"
    assert filter_noise("") == ""
    assert filter_noise("npm warn only noise") == ""


def test_empty_text_is_unclassified():
    assert classify("") is Classification.NONE
    assert classify(None) is Classification.NONE
