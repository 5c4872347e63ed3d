"""
Tests for build command validation.
"""

import pytest

from ybuild.core.engine.commands import parse_command, parse_commands, validate_root
from ybuild.core.errors import ValidationError


class TestParseCommand:
    def test_simple_argv(self):
        cmd = parse_command("go build ./...")
        assert cmd.argv == ("go", "build", "./...")
        assert not cmd.is_chdir

    def test_quotes_are_lexed_not_interpreted(self):
        cmd = parse_command("""echo "hello world" 'a $HOME' b\\ c""")
        assert cmd.argv == ("echo", "hello world", "a $HOME", "b c")

    def test_shell_operators_are_plain_words(self):
        assert parse_command("echo a && echo b").argv == ("echo", "a", "&&", "echo", "b")

    def test_cd(self):
        cmd = parse_command("cd sub/dir")
        assert cmd.is_chdir
        assert cmd.chdir == "sub/dir"
        assert cmd.argv == ()

    def test_cd_quoted(self):
        assert parse_command('cd "my dir"').chdir == "my dir"

    @pytest.mark.parametrize("text", ["cd", "cd ", "cd   "])
    def test_empty_cd(self, text):
        with pytest.raises(ValidationError, match="empty directory"):
            parse_command(text)

    @pytest.mark.parametrize("text", ["cd /etc", "cd \"/etc\"", "cd '/abs'", "cd \\\\share"])
    def test_absolute_cd(self, text):
        with pytest.raises(ValidationError, match="absolute"):
            parse_command(text)

    def test_cd_two_args(self):
        with pytest.raises(ValidationError, match="exactly one"):
            parse_command("cd a b")

    def test_command_starting_with_cd_is_not_cd(self):
        assert parse_command("cdrecord -v").argv == ("cdrecord", "-v")

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty(self, text):
        with pytest.raises(ValidationError, match="empty build command"):
            parse_command(text)

    def test_unbalanced_quote(self):
        with pytest.raises(ValidationError):
            parse_command("echo 'oops")


class TestParseCommands:
    def test_all_validated_first(self):
        with pytest.raises(ValidationError):
            parse_commands(["echo ok", "cd /abs", "echo never"])

    def test_order_kept(self):
        cmds = parse_commands(["cd a", "make"])
        assert [c.text for c in cmds] == ["cd a", "make"]

    def test_cd_back_up_inside_package(self):
        cmds = parse_commands(["cd sub", "cd ..", "make"])
        assert cmds[1].chdir == ".."

    @pytest.mark.parametrize(
        "commands, root",
        [
            (["cd .."], ""),
            (["cd sub/../../other"], ""),
            (["cd a", "cd ..", "cd .."], ""),
            (["cd ../.."], "src"),
        ],
    )
    def test_cd_leaving_package(self, commands, root):
        with pytest.raises(ValidationError, match="leaves the package"):
            parse_commands(commands, root)

    def test_cd_up_from_root_stays_inside(self):
        assert parse_commands(["cd .."], "src/app")[0].chdir == ".."


class TestValidateRoot:
    def test_empty(self):
        assert validate_root("") == ""

    def test_cleaned(self):
        assert validate_root("a/./b/") == "a/b"

    def test_absolute(self):
        with pytest.raises(ValidationError):
            validate_root("/src")

    @pytest.mark.parametrize("root", ["..", "../x", "a/../.."])
    def test_escaping(self, root):
        with pytest.raises(ValidationError, match="leaves the package"):
            validate_root(root)
