"""Prompt template files: parsing, lazy load, fallback."""
import asyncio

import pytest

from palmjob.core.config import DEFAULT_PROMPTS_DIR
from palmjob.services import analysis, validation
from palmjob.services.prompts import PromptFormatError, PromptLoader, PromptParts, parse_prompt_file

FALLBACK = PromptParts(system="fallback system", user="fallback user")


def test_parse_prompt_file():
    parts = parse_prompt_file("===SYSTEM===\n  be nice \n===USER===\n look at this \n")
    assert parts == PromptParts(system="be nice", user="look at this")
    assert parts.length == len("be nice") + len("look at this")


@pytest.mark.parametrize(
    "contents",
    [
        "no markers at all",
        "===USER===\nuser\n===SYSTEM===\nsystem",
        "===SYSTEM===\n\n===USER===\nuser",
        "===SYSTEM===\nsystem\n===USER===\n   ",
    ],
)
def test_parse_prompt_file_rejects_bad_layout(contents):
    with pytest.raises(PromptFormatError):
        parse_prompt_file(contents)


@pytest.mark.parametrize("name", [validation.PROMPT_FILE, analysis.PROMPT_FILE])
def test_shipped_prompt_files_parse(name):
    parts = parse_prompt_file((DEFAULT_PROMPTS_DIR / name).read_text(encoding="utf-8"), name)
    assert "JSON" in parts.system
    assert parts.user


async def test_loader_reads_file_once(tmp_path, monkeypatch):
    path = tmp_path / "p.prompt"
    path.write_text("===SYSTEM===\nsys\n===USER===\nusr", encoding="utf-8")
    loader = PromptLoader(path, FALLBACK)

    reads = 0
    real_read = type(path).read_text

    def counting_read(self, *args, **kwargs):
        nonlocal reads
        reads += 1
        return real_read(self, *args, **kwargs)

    monkeypatch.setattr(type(path), "read_text", counting_read)
    results = await asyncio.gather(*(loader.get() for _ in range(5)))
    assert all(r == PromptParts(system="sys", user="usr") for r in results)
    assert reads == 1

    path.write_text("===SYSTEM===\nchanged\n===USER===\nusr", encoding="utf-8")
    assert (await loader.get()).system == "sys"


async def test_loader_missing_file_uses_fallback(tmp_path):
    loader = PromptLoader(tmp_path / "missing.prompt", FALLBACK)
    assert await loader.get() == FALLBACK


async def test_loader_malformed_file_uses_fallback(tmp_path):
    path = tmp_path / "bad.prompt"
    path.write_text("just some text", encoding="utf-8")
    assert await PromptLoader(path, FALLBACK).get() == FALLBACK
