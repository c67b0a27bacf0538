from unittest.mock import MagicMock, patch

import pytest
import requests

from learnpro.application.errors import UpstreamError
from learnpro.infrastructure.mailer import ResendMailer


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body or {"id": "msg_123"}
    response.text = "error body"
    return response


@patch("learnpro.infrastructure.mailer.requests.post")
def test_send_posts_to_resend(mock_post):
    mock_post.return_value = _response()
    mailer = ResendMailer(api_key="re_key", sender="LearnPro <noreply@learnpro.com>",
                          api_url="https://api.resend.com/emails", timeout=5)

    assert mailer.send("a@example.com", "Subject", "<p>Hi</p>") == "msg_123"

    args, kwargs = mock_post.call_args
    assert args[0] == "https://api.resend.com/emails"
    assert kwargs["headers"]["Authorization"] == "Bearer re_key"
    assert kwargs["json"] == {"from": "LearnPro <noreply@learnpro.com>", "to": ["a@example.com"],
                              "subject": "Subject", "html": "<p>Hi</p>"}
    assert kwargs["timeout"] == 5

def test_send_without_api_key():
    with pytest.raises(UpstreamError):
        ResendMailer(api_key="").send("a@example.com", "Subject", "<p>Hi</p>")

@patch("learnpro.infrastructure.mailer.requests.post")
def test_send_rejected(mock_post):
    mock_post.return_value = _response(status_code=422)
    with pytest.raises(UpstreamError) as exc:
        ResendMailer(api_key="re_key").send("a@example.com", "Subject", "<p>Hi</p>")
    assert "422" in exc.value.message

@patch("learnpro.infrastructure.mailer.requests.post")
def test_send_timeout(mock_post):
    mock_post.side_effect = requests.exceptions.Timeout()
    with pytest.raises(UpstreamError):
        ResendMailer(api_key="re_key").send("a@example.com", "Subject", "<p>Hi</p>")

@patch("learnpro.infrastructure.mailer.requests.post")
def test_send_reminder_renders_template(mock_post):
    mock_post.return_value = _response()
    ResendMailer(api_key="re_key").send_reminder(
        "a@example.com", "Ana <b>", "Keep going", "Lesson 3 awaits", course_id=7, course_title="SQL"
    )
    html = mock_post.call_args.kwargs["json"]["html"]
    assert "Lesson 3 awaits" in html
    assert "/courses/7" in html
    assert "Ana &lt;b&gt;" in html
    assert mock_post.call_args.kwargs["json"]["subject"] == "Keep going"

@patch("learnpro.infrastructure.mailer.requests.post")
def test_send_accepted_with_unreadable_body(mock_post):
    response = _response()
    response.json.side_effect = ValueError("not json")
    mock_post.return_value = response
    assert ResendMailer(api_key="re_key").send("a@example.com", "Subject", "<p>Hi</p>") is None
