import os
import sys
import pytest

# Adjust path to find modules
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))

from pydantic import ValidationError

from adpipeline.config import PipelineSettings


class TestPipelineSettings:

    def test_defaults(self, monkeypatch, tmp_path):
        for name in ("ADPIPELINE_PORT", "ADPIPELINE_PUBLIC_DIR", "REPLICATE_TIMEOUT", "OUTPUT_DIR"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.chdir(tmp_path)

        settings = PipelineSettings()

        assert settings.PORT == 3001
        assert settings.REPLICATE_TIMEOUT == 600.0
        assert settings.STRIP_THRESHOLD == 5000
        assert settings.PUBLIC_DIR == os.path.join(str(tmp_path), "public")
        assert settings.OUTPUT_DIR == os.path.join(settings.PUBLIC_DIR, "pipeline-output")

    def test_reads_typed_values_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ADPIPELINE_PORT", "8080")
        monkeypatch.setenv("REPLICATE_TIMEOUT", "12.5")
        monkeypatch.setenv("ADPIPELINE_STRIP_THRESHOLD", "100")
        monkeypatch.setenv("ADPIPELINE_PUBLIC_DIR", str(tmp_path / "www"))
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test")
        monkeypatch.delenv("OUTPUT_DIR", raising=False)

        settings = PipelineSettings()

        assert settings.PORT == 8080
        assert settings.REPLICATE_TIMEOUT == 12.5
        assert settings.STRIP_THRESHOLD == 100
        assert settings.OPENROUTER_API_KEY == "sk-or-test"
        assert settings.OUTPUT_DIR == str(tmp_path / "www" / "pipeline-output")

    def test_empty_value_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("ADPIPELINE_PORT", "")
        assert PipelineSettings().PORT == 3001

    def test_invalid_number_is_rejected(self, monkeypatch):
        monkeypatch.setenv("ADPIPELINE_PORT", "eighty")
        with pytest.raises(ValidationError):
            PipelineSettings()
