"""Tests for the lesson generation CLI with a scripted client."""

import json
import logging
from unittest.mock import patch

import pytest

from lessongen.cli.generate_lesson import build_request, main, parse_args
from lessongen.validators.schema import CEFRLevel, LessonType
from tests.conftest import CLIMATE_ARTICLE, ScriptedClient


class CliClient(ScriptedClient):
    def get_usage_summary(self):
        return {"total_tokens": self.total_usage.total_tokens, "estimated_cost_usd": 0.0}


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def article_file(tmp_path):
    path = tmp_path / "article.txt"
    path.write_text(CLIMATE_ARTICLE, encoding="utf-8")
    return path


class TestParseArgs:
    def test_defaults(self, article_file, tmp_path):
        args = parse_args(["--source", str(article_file), "--output", str(tmp_path / "out.json")])

        assert args.level == "B1"
        assert args.lesson_type == "discussion"
        assert args.language == "English"
        assert args.max_attempts is None

    def test_source_or_request_required(self, tmp_path):
        with pytest.raises(SystemExit):
            parse_args(["--output", str(tmp_path / "out.json")])

    def test_unknown_level_rejected(self, article_file, tmp_path):
        with pytest.raises(SystemExit):
            parse_args(["--source", str(article_file), "--level", "C2", "--output", "out.json"])


class TestBuildRequest:
    def test_from_source_options(self, article_file):
        args = parse_args(
            [
                "--source", str(article_file),
                "--level", "A2",
                "--lesson-type", "travel",
                "--title", "Record Heat",
                "--output", "out.json",
            ]
        )

        request = build_request(args)

        assert request.cefr_level == CEFRLevel.A2
        assert request.lesson_type == LessonType.TRAVEL
        assert request.source_metadata.title == "Record Heat"
        assert request.source_text == CLIMATE_ARTICLE

    def test_from_request_file(self, tmp_path):
        request_file = tmp_path / "request.json"
        request_file.write_text(
            json.dumps({"sourceText": "Text.", "lessonType": "business", "cefrLevel": "C1"}),
            encoding="utf-8",
        )

        request = build_request(parse_args(["--request", str(request_file), "--output", "out.json"]))

        assert request.lesson_type == LessonType.BUSINESS


class TestMain:
    """Test the CLI end to end."""

    def test_writes_lesson(self, article_file, tmp_path, lesson_script, capsys):
        output = tmp_path / "out" / "lesson.json"
        client = CliClient(lesson_script)

        with patch("lessongen.cli.generate_lesson.LLMGenerationClient", return_value=client):
            exit_code = main(
                ["--source", str(article_file), "--title", "Record Heat Around the Globe", "--output", str(output)]
            )

        assert exit_code == 0
        lesson = json.loads(output.read_text(encoding="utf-8"))
        assert lesson["title"].endswith("Record Heat Around the Globe")
        assert list(lesson["sections"]) == [
            "warmup",
            "vocabulary",
            "reading",
            "comprehension",
            "discussion",
            "wrapup",
        ]
        stdout = capsys.readouterr().out
        assert "[100%] done" in stdout
        assert "LESSON GENERATION USAGE REPORT" in stdout

    def test_failure_writes_error(self, article_file, tmp_path, lesson_script):
        output = tmp_path / "lesson.json"
        lesson_script["wrapup"] = ["Nothing here."]
        client = CliClient(lesson_script)

        with patch("lessongen.cli.generate_lesson.LLMGenerationClient", return_value=client):
            exit_code = main(["--source", str(article_file), "--max-attempts", "1", "--output", str(output)])

        assert exit_code == 1
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["error"]["section_name"] == "wrapup"
        assert data["error"]["attempts_exhausted"] == 1
        assert data["token_report"]["total_calls"] > 0

    def test_missing_source_file(self, tmp_path):
        exit_code = main(["--source", str(tmp_path / "missing.txt"), "--output", str(tmp_path / "o.json")])

        assert exit_code == 1

    def test_invalid_request_file(self, tmp_path):
        request_file = tmp_path / "request.json"
        request_file.write_text(json.dumps({"sourceText": " ", "lessonType": "discussion"}), encoding="utf-8")

        assert main(["--request", str(request_file), "--output", str(tmp_path / "o.json")]) == 1
