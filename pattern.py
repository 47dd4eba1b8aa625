import re
# Patterns kept in their own file to avoid confusing the LLM when it is asked to modify this file

FENCE = "```"

# Any line that begins at column 0 with the fence, optionally followed by an info string
fence_line_pattern = re.compile(r"^```[^\n]*$", re.MULTILINE)

# Decoration models like to wrap file names in
file_name_prefix_pattern = re.compile(r"^(?:file|filename|path)\s*:\s*", re.IGNORECASE)

DEFAULT_SHADOW_PREFIX = ".orgai__"

PROMPT_INTRO = """I will show you the content of several files of a project. \
Each file is given by its path relative to the project root on its own line, \
followed by the file content surrounded by triple backticks.
After the files I will tell you what to do with them.

My request is:
{request}

Here are the files:

"""

MODIFY_INSTRUCTION = """Modify the files above to fulfill my request.
Answer with every file you changed, using exactly the same format: the file path on its own line, \
then the complete new file content surrounded by triple backticks, each on their own line.
Only output files you changed and always output them in full. Do not add anything inside the backticks \
besides the file content."""

ANSWER_INSTRUCTION = """Now answer my request about the files above."""
