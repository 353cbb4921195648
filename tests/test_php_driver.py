from __future__ import annotations

import hashlib
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from paramsniff.php.discovery import FileMeta, Language
from paramsniff.php.php_driver import ParserError, PhpTreeSitterDriver, tokenize_source
from paramsniff.php.tokens import TokenKind

SAMPLE = """<h1>Settings</h1>
<?php
// Persist plugin settings
$name = "größe";
update_option( 'my_plugin', [ 'a' => 1 ], "no" );
$fn = update_option(...);
"""


def _file_meta_for(tmp_path: Path, rel_name: str, raw: bytes, *, is_text: bool = True) -> FileMeta:
    path = tmp_path / rel_name
    path.write_bytes(raw)
    return FileMeta(
        path=rel_name,
        real_path=str(path),
        blob_sha=hashlib.blake2b(raw, digest_size=32).hexdigest(),
        size_bytes=len(raw),
        is_text=is_text,
        encoding="utf-8" if is_text else None,
        lang=Language.PHP if is_text else Language.UNKNOWN,
        flags=set() if is_text else {"binary"},
    )


def test_tokens_cover_the_source_exactly() -> None:
    stream = tokenize_source(SAMPLE, path="sample.php")
    assert stream.source == SAMPLE
    assert stream.path == "sample.php"

    offset = 0
    for tok in stream:
        assert tok.byte_start == offset
        offset = tok.byte_end
    assert offset == len(SAMPLE.encode("utf-8"))


def test_token_kinds_for_a_call() -> None:
    stream = tokenize_source(SAMPLE)
    kinds = {t.text: t.kind for t in stream if not t.is_trivia}

    assert kinds["<?php"] is TokenKind.OPEN_TAG
    assert kinds["update_option"] is TokenKind.IDENTIFIER
    assert kinds["'my_plugin'"] is TokenKind.STRING
    assert kinds['"no"'] is TokenKind.STRING
    assert kinds["$name"] is TokenKind.VARIABLE
    assert kinds["["] is TokenKind.OPEN_SHORT_ARRAY
    assert kinds["]"] is TokenKind.CLOSE_SHORT_ARRAY
    assert kinds["=>"] is TokenKind.DOUBLE_ARROW
    assert kinds["..."] is TokenKind.ELLIPSIS
    comment = next(t for t in stream if t.text.startswith("//"))
    assert comment.kind is TokenKind.COMMENT
    assert comment.is_trivia


def test_lines_and_columns_are_one_based() -> None:
    stream = tokenize_source(SAMPLE)
    call = next(t for t in stream if t.text == "update_option")
    assert (call.line, call.column) == (5, 1)
    no = next(t for t in stream if t.text == '"no"')
    assert (no.line, no.column) == (5, 43)
    # Columns count characters, not bytes
    after_multibyte = next(t for t in stream if t.line == 4 and t.text == ";")
    assert after_multibyte.column == 16


def test_broken_source_still_tokenizes_and_reports_errors() -> None:
    driver = PhpTreeSitterDriver()
    src = "<?php\nupdate_option('a', 'b', 'yes'\nfunction {\n"
    stream = driver.tokenize(src)
    assert stream.source == src
    assert driver.last_syntax_errors

    driver.tokenize("<?php\necho 1;\n")
    assert driver.last_syntax_errors == []


def test_driver_info_is_stable() -> None:
    info = PhpTreeSitterDriver().info()
    assert info.grammar_name == "tree-sitter-php"
    assert info == PhpTreeSitterDriver().info()


def test_tokenize_file_reads_and_classifies_errors(tmp_path) -> None:
    driver = PhpTreeSitterDriver()
    raw = b"<?php\nadd_option('a', 'b');\n"
    fm = _file_meta_for(tmp_path, "ok.php", raw)
    stream = driver.tokenize_file(fm)
    assert stream.path == "ok.php"
    assert stream.source == raw.decode("utf-8")

    binary = _file_meta_for(tmp_path, "blob.php", b"\x00\x01\x02", is_text=False)
    with pytest.raises(ParserError) as exc:
        driver.tokenize_file(binary)
    assert exc.value.code == "NOT_TEXT"

    gone = _file_meta_for(tmp_path, "gone.php", raw)
    Path(gone.real_path).unlink()
    with pytest.raises(ParserError) as exc:
        driver.tokenize_file(gone)
    assert exc.value.code == "IO_ERROR"
