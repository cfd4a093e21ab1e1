from .prompts import Prompter


__all__ = ["Prompter"]
