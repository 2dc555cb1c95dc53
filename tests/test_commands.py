"""Tests for shell command extraction."""

from deltacli.core.blocks import CodeBlock, extract_code_blocks
from deltacli.core.commands import extract_commands, is_shell_block


class TestIsShellBlock:
    def test_shell_languages(self):
        for language in ("bash", "sh", "shell", "zsh", "BASH"):
            assert is_shell_block(CodeBlock(language, "ls"))

    def test_other_languages(self):
        for language in ("python", "text", "powershell"):
            assert not is_shell_block(CodeBlock(language, "ls"))


class TestExtractCommands:
    def test_order_within_and_across_blocks(self):
        text = "```bash\nmkdir app\ncd app\n```\nthen\n```sh\nnpm init -y\n```"
        assert extract_commands(extract_code_blocks(text)) == ["mkdir app", "cd app", "npm init -y"]

    def test_drops_blank_comment_and_heredoc_lines(self):
        block = CodeBlock(
            "bash",
            "# set up\n\n  npm install  \n// not a command\ncat > a.txt << EOF\nhello\nEOF\nnpm test",
        )
        assert extract_commands([block]) == ["npm install", "hello", "npm test"]

    def test_python_block_never_contributes(self):
        block = CodeBlock("python", "pip install requests\nimport os")
        assert extract_commands([block]) == []

    def test_empty(self):
        assert extract_commands([]) == []

    def test_block_after_non_word_tag_still_found(self):
        text = "```c++\nint x;\n```\n\nThen:\n```bash\nls\n```\n"
        assert extract_commands(extract_code_blocks(text)) == ["ls"]
