import pytest
from pydantic import ValidationError

from schema import AnalyzeRequest, OptimizeRequest
from utils.validation import contains_malicious_patterns, sanitize_text

from conftest import RESUME_TEXT


def test_sanitize_strips_markup_and_separators():
    text = 'Hello <b>world</b>; "quoted" \\ javascript:alert(1) <img onerror=x>'

    assert sanitize_text(text) == "Hello world quoted alert(1)"


def test_sanitize_collapses_whitespace():
    assert sanitize_text("  a \n\n b\t c  ") == "a b c"


@pytest.mark.parametrize("text", [
    "<script>alert(1)</script>",
    "JAVASCRIPT:void(0)",
    '<a onclick="x">',
    "data:text/html;base64,AAAA",
    "vbscript:msgbox",
    "width: expression(alert(1))",
])
def test_malicious_patterns(text):
    assert contains_malicious_patterns(text)


def test_plain_resume_is_not_malicious():
    assert not contains_malicious_patterns(RESUME_TEXT)


class TestRequestModels:
    def test_analyze_request_sanitizes_text(self):
        request = AnalyzeRequest(resumeText=RESUME_TEXT + "  <b>extra</b>", jobDescription="  Python <i>dev</i> ")

        assert request.resumeText.endswith("extra")
        assert request.jobDescription == "Python dev"
        assert request.resumeId is None

    def test_resume_text_too_short(self):
        with pytest.raises(ValidationError):
            AnalyzeRequest(resumeText="too short")

    def test_resume_text_too_long(self):
        with pytest.raises(ValidationError):
            AnalyzeRequest(resumeText="x" * 50001)

    def test_job_description_too_long(self):
        with pytest.raises(ValidationError):
            AnalyzeRequest(resumeText=RESUME_TEXT, jobDescription="x" * 10001)

    def test_ids_must_be_uuids(self):
        with pytest.raises(ValidationError):
            OptimizeRequest(resumeText=RESUME_TEXT, analysisId="not-a-uuid")

    def test_optimize_request_defaults(self):
        request = OptimizeRequest(resumeText=RESUME_TEXT)

        assert request.analysisInsights is None
        assert request.jobDescription is None
        assert request.analysisId is None
