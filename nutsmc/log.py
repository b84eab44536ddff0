"""Console logging for samplers and adaptation."""


class SimpleLogger:
    """
    verbose:
      0: silent
      1: schedule + window events + run summary
      2: periodic progress lines
    """

    def __init__(self, verbose: int = 1):
        self.verbose = int(verbose)

    def log(self, msg: str, level: int = 1) -> None:
        if self.verbose >= level:
            print(msg, flush=True)

    def warn(self, msg: str) -> None:
        # Warnings are shown at any verbosity except silent.
        if self.verbose >= 1:
            print(f"  WARNING: {msg}", flush=True)


def format_vector(values, max_len: int = 32) -> str:
    """Short printable form of a vector, truncated like '[1.0, 0.98, ...'."""
    text = "[" + ", ".join(f"{float(v):.4g}" for v in values) + "]"
    if len(text) >= max_len:
        text = text[: max_len - 2] + "..."
    return text
