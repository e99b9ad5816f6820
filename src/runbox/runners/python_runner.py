from pathlib import Path
from .base import LanguagePipeline

class PythonPipeline(LanguagePipeline):
    source_name = "main.py"

    def __init__(self, python_bin: str = "python3"):
        self.python_bin = python_bin

    def run_command(self, workspace: Path):
        return [self.python_bin, str(workspace / self.source_name)]
