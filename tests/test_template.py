"""
Tests for .env template parsing, resolution and templatizing
"""

import pytest

from enject.exceptions import MalformedTemplateLineError, SecretNotFoundError
from enject.secret import SecretString
from enject.template import (
    GlobalRef,
    LocalRef,
    Passthrough,
    Plain,
    count_legacy_references,
    format_line,
    has_global_references,
    parse,
    parse_line,
    resolve,
    templatize,
)


class TestParseLine:
    """Classification of single lines"""

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("PORT=3000", Plain("PORT", "3000")),
            ("DB=en://dbsecret", LocalRef("DB", "dbsecret")),
            ("K=en://global/shared", GlobalRef("K", "shared")),
            ("# comment", Passthrough("# comment")),
            ("", Passthrough("")),
            ("EMPTY=", Plain("EMPTY", "")),
            ("  SPACED  =value", Plain("SPACED", "value")),
            ("URL=postgres://user:pw@host/db?a=b", Plain("URL", "postgres://user:pw@host/db?a=b")),
            ("X=en:/not-a-ref", Plain("X", "en:/not-a-ref")),
            ("X=EN://upper", Plain("X", "EN://upper")),
        ],
    )
    def test_classification(self, line, expected):
        """Test each line kind is recognized"""
        assert parse_line(line) == expected

    def test_only_first_equals_is_delimiter(self):
        """Test further '=' characters stay in the value"""
        assert parse_line("TOKEN=abc==def=") == Plain("TOKEN", "abc==def=")

    def test_trailing_whitespace_trimmed_from_value(self):
        """Test trailing whitespace is dropped but leading value spaces are kept"""
        assert parse_line("KEY= value  \t") == Plain("KEY", " value")

    def test_passthrough_keeps_original_text(self):
        """Test comments and blank lines keep their untrimmed text"""
        assert parse_line("   ") == Passthrough("   ")
        assert parse_line("# note   ") == Passthrough("# note   ")

    def test_indented_comment_is_not_passthrough(self):
        """Test only lines starting with '#' are comments"""
        with pytest.raises(MalformedTemplateLineError):
            parse_line("  # indented")

    @pytest.mark.parametrize("line", ["NOEQUALS", "=value", "   =value", "K=en://", "K=en://global/"])
    def test_malformed(self, line):
        """Test malformed lines raise instead of passing through"""
        with pytest.raises(MalformedTemplateLineError):
            parse_line(line)

    def test_error_reports_line_number(self):
        """Test the line number is part of the error message"""
        with pytest.raises(MalformedTemplateLineError, match="line 7"):
            parse_line("BROKEN", lineno=7)

    def test_legacy_token(self):
        """Test ev:// references parse as their en:// equivalents"""
        local = parse_line("DB=ev://dbsecret")
        glob = parse_line("K=ev://global/shared")
        assert local == LocalRef("DB", "dbsecret")
        assert local.legacy is True
        assert glob == GlobalRef("K", "shared")
        assert glob.legacy is True
        assert parse_line("DB=en://dbsecret").legacy is False

    def test_secret_name_kept_verbatim(self):
        """Test secret names may contain slashes and other characters"""
        assert parse_line("K=en://team/api-key.v2") == LocalRef("K", "team/api-key.v2")
        assert parse_line("K=en://global/a/b") == GlobalRef("K", "a/b")


class TestParse:
    """Whole-file parsing"""

    def test_preserves_order_and_kinds(self):
        """Test lines come back in source order"""
        text = "# header\n\nPORT=3000\nDB=en://dbsecret\nK=en://global/shared\n"
        assert parse(text) == [
            Passthrough("# header"),
            Passthrough(""),
            Plain("PORT", "3000"),
            LocalRef("DB", "dbsecret"),
            GlobalRef("K", "shared"),
        ]

    def test_empty_text(self):
        """Test empty input yields no lines"""
        assert parse("") == []

    def test_trailing_newline_does_not_add_line(self):
        """Test 'A=1\\n' and 'A=1' parse identically"""
        assert parse("A=1\n") == parse("A=1") == [Plain("A", "1")]

    def test_crlf_line_endings(self):
        """Test CRLF input does not leak carriage returns into values"""
        assert parse("A=1\r\nB=en://b\r\n") == [Plain("A", "1"), LocalRef("B", "b")]

    def test_lone_carriage_return_is_not_a_separator(self):
        """Test only LF and CRLF split lines"""
        assert parse("A=1\rB=2") == [Plain("A", "1\rB=2")]

    def test_all_or_nothing(self):
        """Test a malformed line anywhere fails the whole parse with its line number"""
        with pytest.raises(MalformedTemplateLineError, match="line 3"):
            parse("A=1\nB=2\nBROKEN\nC=3\n")

    def test_count_legacy_references(self):
        lines = parse("A=ev://a\nB=en://b\nC=ev://global/c\nD=plain\n")
        assert count_legacy_references(lines) == 2

    def test_has_global_references(self):
        assert has_global_references(parse("A=en://global/a\n"))
        assert not has_global_references(parse("A=en://a\nB=2\n"))


class TestResolve:
    """Reference resolution"""

    def test_local_reference(self):
        """Test a local reference is replaced by the stored value"""
        lines = [LocalRef("DB", "dbsecret")]
        assert resolve(lines, {"dbsecret": "postgres://x"}, {}) == {"DB": "postgres://x"}

    def test_mixed_template(self):
        """Test plain, local and global lines all land in the map"""
        lines = parse("# c\nPORT=3000\nDB=en://db\nSHARED=en://global/shared\n")
        env = resolve(
            lines,
            {"db": SecretString("postgres://x")},
            {"shared": SecretString("s3cr3t")},
        )
        assert env == {"PORT": "3000", "DB": "postgres://x", "SHARED": "s3cr3t"}

    def test_missing_local_reference(self):
        """Test the missing secret's name is reported"""
        lines = parse("PORT=3000\nDB=en://dbsecret\nOTHER=en://other\n")
        with pytest.raises(SecretNotFoundError) as exc_info:
            resolve(lines, {"other": "x"}, {})
        assert exc_info.value.name == "dbsecret"
        assert "enject set dbsecret" in str(exc_info.value)

    def test_missing_global_reference_is_prefixed(self):
        """Test global misses are distinguishable from local ones"""
        lines = [GlobalRef("K", "x")]
        with pytest.raises(SecretNotFoundError) as exc_info:
            resolve(lines, {"x": "local-value"}, {})
        assert exc_info.value.name == "global/x"

    def test_local_reference_does_not_read_global_map(self):
        """Test local references only consult the project store"""
        with pytest.raises(SecretNotFoundError) as exc_info:
            resolve([LocalRef("K", "x")], {}, {"x": "global-value"})
        assert exc_info.value.name == "x"

    def test_later_duplicate_key_wins(self):
        """Test a repeated key takes its last value"""
        lines = parse("A=1\nA=en://a\n")
        assert resolve(lines, {"a": "secret"}, {}) == {"A": "secret"}

    def test_error_does_not_contain_other_secret_values(self):
        """Test secret values resolved before the failure are not leaked"""
        lines = parse("A=en://a\nB=en://missing\n")
        with pytest.raises(SecretNotFoundError) as exc_info:
            resolve(lines, {"a": "TOP-SECRET-VALUE"}, {})
        assert "TOP-SECRET-VALUE" not in str(exc_info.value)
        assert "TOP-SECRET-VALUE" not in repr(exc_info.value)


class TestTemplatize:
    """Rewriting plain lines as references"""

    def test_plain_becomes_local_reference(self):
        """Test the key is used as the secret name"""
        lines = parse("# keep me\nAPI_KEY=abc123\n\nDB=en://db\nK=en://global/shared\n")
        assert templatize(lines) == [
            "# keep me",
            "API_KEY=en://API_KEY",
            "",
            "DB=en://db",
            "K=en://global/shared",
        ]

    def test_legacy_references_rewritten_with_current_token(self):
        """Test ev:// references come out as en://"""
        assert templatize(parse("A=ev://a\nB=ev://global/b\n")) == [
            "A=en://a",
            "B=en://global/b",
        ]

    def test_idempotent(self):
        """Test templatizing already-templatized text changes nothing"""
        text = "# c\nPORT=3000\nDB=en://dbsecret\nK=en://global/shared\n"
        once = templatize(parse(text))
        twice = templatize(parse("\n".join(once)))
        assert once == twice
        assert [l for l in parse("\n".join(twice)) if not isinstance(l, Passthrough)] == [
            LocalRef("PORT", "PORT"),
            LocalRef("DB", "dbsecret"),
            GlobalRef("K", "shared"),
        ]

    def test_format_line_roundtrip(self):
        """Test formatted lines parse back to the same value"""
        for line in [Plain("A", "x=y"), LocalRef("B", "b"), GlobalRef("C", "c"), Passthrough("# z")]:
            assert parse_line(format_line(line)) == line
