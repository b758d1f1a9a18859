"""Package entry point for ``python -m iconv_converter``.

WHY: Python's ``-m`` flag looks for ``__main__.py`` inside the package
and executes it, so users can convert files without an installed script.

HOW: Delegates to the CLI's main() function.
"""

from iconv_converter.cli import main

if __name__ == "__main__":
    main()
