"""Terminal output for the TDS3000 REPL."""

import os
import sys


class ColorPrinter:
    """
    Prints tagged, colored messages for the REPL user.

    Colors are dropped when stdout is not a terminal or NO_COLOR is set, so
    piped output and captured logs stay plain.
    """

    # ANSI Color Codes
    HEADER = "\033[95m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    RESET = "\033[0m"
    BOLD = "\033[1m"

    WIDTH = 60

    @staticmethod
    def use_color():
        if os.environ.get("NO_COLOR"):
            return False
        return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()

    @staticmethod
    def _emit(color, text):
        if ColorPrinter.use_color():
            text = f"{color}{text}{ColorPrinter.RESET}"
        print(text)

    @staticmethod
    def info(message):
        ColorPrinter._emit(ColorPrinter.BLUE, f"[INFO] {message}")

    @staticmethod
    def success(message):
        ColorPrinter._emit(ColorPrinter.GREEN, f"[SUCCESS] {message}")

    @staticmethod
    def warning(message):
        ColorPrinter._emit(ColorPrinter.YELLOW, f"[WARNING] {message}")

    @staticmethod
    def error(message):
        ColorPrinter._emit(ColorPrinter.RED, f"[ERROR] {message}")

    @staticmethod
    def cyan(message):
        """Plain data output (query replies, sample previews)."""
        ColorPrinter._emit(ColorPrinter.CYAN, message)

    @staticmethod
    def header(message):
        """Boxed section title, e.g. above a waveform listing."""
        rule = "=" * ColorPrinter.WIDTH
        ColorPrinter._emit(ColorPrinter.HEADER + ColorPrinter.BOLD, f"\n{rule}\n   {message.upper()}\n{rule}\n")
