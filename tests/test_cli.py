"""Tests for qrbatch.cli."""

import argparse
import zipfile
from pathlib import Path

import pytest

from qrbatch.cli import _parse_logo_option, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("QRBATCH_MAX_ENTRIES", "QRBATCH_ALLOW_PARTIAL", "QRBATCH_ARCHIVE_NAME"):
        monkeypatch.delenv(name, raising=False)


def test_generate_writes_archive_and_sheet(tmp_path, red_logo, capsys):
    logo = tmp_path / "logo.png"
    logo.write_bytes(red_logo)
    out = tmp_path / "out" / "codes.zip"
    sheet = tmp_path / "sheet.html"

    code = main([
        "generate", "https://www.a.com", "", "not a url",
        "--logo", f"1={logo}",
        "-o", str(out),
        "--print-sheet", str(sheet),
    ])

    assert code == 0
    with zipfile.ZipFile(out) as zf:
        assert zf.namelist() == ["qrcode_a.com_1.png", "qrcode_2.png"]
    assert "QR Codes (2)" in sheet.read_text(encoding="utf-8")
    assert "qrcode_a.com_1.png" in capsys.readouterr().out


def test_generate_reads_input_file(tmp_path, red_logo):
    logo = tmp_path / "logo.png"
    logo.write_bytes(red_logo)
    links = tmp_path / "links.txt"
    links.write_text(f"https://a.com\t{logo}\n\nhttps://b.com\n", encoding="utf-8")
    out = tmp_path / "codes.zip"

    assert main(["generate", "-i", str(links), "-o", str(out)]) == 0
    with zipfile.ZipFile(out) as zf:
        assert zf.namelist() == ["qrcode_a.com_1.png", "qrcode_b.com_2.png"]


def test_generate_with_only_blank_links_fails(tmp_path, capsys):
    assert main(["generate", "", "  ", "-o", str(tmp_path / "x.zip")]) == 1
    assert not (tmp_path / "x.zip").exists()
    assert "Nothing to generate" in capsys.readouterr().err


def test_generate_reports_failing_link(tmp_path, capsys):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"garbage")

    code = main(["generate", "https://a.com", "https://b.com", "--logo", f"2={bad}",
                 "-o", str(tmp_path / "x.zip")])

    assert code == 1
    assert "link 2" in capsys.readouterr().err
    assert not (tmp_path / "x.zip").exists()


def test_generate_partial_keeps_good_links(tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"garbage")
    out = tmp_path / "x.zip"

    code = main(["generate", "https://a.com", "https://b.com", "--logo", f"2={bad}",
                 "--partial", "-o", str(out)])

    assert code == 1
    with zipfile.ZipFile(out) as zf:
        assert zf.namelist() == ["qrcode_a.com_1.png"]


def test_missing_logo_file_is_usage_error(tmp_path, capsys):
    out = tmp_path / "x.zip"
    code = main(["generate", "https://x.com", "--logo", f"1={tmp_path / 'nope.png'}", "-o", str(out)])

    assert code == 2
    assert "Cannot read logo for link 1" in capsys.readouterr().err
    assert not out.exists()


def test_missing_logo_in_input_file_is_usage_error(tmp_path, capsys):
    links = tmp_path / "links.txt"
    links.write_text(f"https://a.com\nhttps://b.com\t{tmp_path / 'gone.png'}\n", encoding="utf-8")

    assert main(["generate", "-i", str(links), "-o", str(tmp_path / "x.zip")]) == 2
    assert "link 2" in capsys.readouterr().err


def test_too_many_links(tmp_path, monkeypatch):
    monkeypatch.setenv("QRBATCH_MAX_ENTRIES", "2")
    assert main(["generate", "a", "b", "c", "-o", str(tmp_path / "x.zip")]) == 2


def test_invalid_config_is_usage_error(tmp_path):
    assert main(["generate", "a", "--size", "-1", "-o", str(tmp_path / "x.zip")]) == 2


def test_no_command_prints_help(capsys):
    assert main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_parse_logo_option():
    assert _parse_logo_option("3=logo.png") == (3, Path("logo.png"))
    for bad in ("logo.png", "0=x.png", "a=x.png", "2="):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_logo_option(bad)
