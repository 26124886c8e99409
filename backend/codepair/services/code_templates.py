from codepair.core.config import Language

DEFAULT_CODE: dict[str, str] = {
    "javascript": (
        "// Welcome to the coding interview!\n"
        "// Start typing your code here...\n"
        "\n"
        "function hello() {\n"
        '  console.log("Hello, World!");\n'
        "}\n"
        "\n"
        "hello();"
    ),
    "python": (
        "# Welcome to the coding interview!\n"
        "# Start typing your code here...\n"
        "\n"
        "def hello():\n"
        '    print("Hello, World!")\n'
        "\n"
        "hello()"
    ),
}

SUPPORTED_LANGUAGES = frozenset(DEFAULT_CODE)


def template_for(language: Language | str) -> str:
    try:
        return DEFAULT_CODE[language]
    except KeyError as exc:
        raise ValueError(f"Unsupported language: {language}") from exc
