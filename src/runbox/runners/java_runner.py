from pathlib import Path
from typing import List

from .base import LanguagePipeline


class JavaPipeline(LanguagePipeline):
    # public class must be Main
    source_name = "Main.java"
    entry_point = "Main"

    def __init__(self, javac: str = "javac", java: str = "java"):
        self.javac = javac
        self.java = java

    def compile_command(self, workspace: Path) -> List[str]:
        return [self.javac, str(workspace / self.source_name)]

    def run_command(self, workspace: Path) -> List[str]:
        return [self.java, "-cp", str(workspace), self.entry_point]
