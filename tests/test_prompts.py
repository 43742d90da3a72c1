"""Tests for system prompt loading and assembly."""
import pytest

from sandchat.prompts import build_system_prompt, get_system_prompt, load_prompt


@pytest.fixture(autouse=True)
def fresh_prompt_cache():
    load_prompt.cache_clear()
    yield
    load_prompt.cache_clear()


class TestLoadPrompt:
    """Tests for load_prompt."""

    def test_packaged_default(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert get_system_prompt().startswith("You are a senior software developer")

    def test_working_directory_override(self, tmp_path, monkeypatch):
        (tmp_path / "prompts").mkdir()
        (tmp_path / "prompts" / "system.txt").write_text("Be terse.\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        assert get_system_prompt() == "Be terse."

    def test_missing_prompt(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(FileNotFoundError, match="nonexistent"):
            load_prompt("nonexistent")


class TestBuildSystemPrompt:
    """Tests for build_system_prompt."""

    def test_lists_tools(self):
        prompt = build_system_prompt("Help out.", ["read_file", "web_search"])
        assert prompt == (
            "Help out.\n\nYou have access to the following tools:\n- read_file\n- web_search"
        )

    def test_without_tools(self):
        assert build_system_prompt("  Help out.  ", []) == "Help out."

    def test_blank_prompt_uses_default(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert build_system_prompt("", []) == get_system_prompt()
