from pathlib import Path
from typing import List

from ..core.utils import binary_suffix
from .base import LanguagePipeline


class CppPipeline(LanguagePipeline):
    source_name = "main.cpp"

    def __init__(self, compiler: str = "g++"):
        self.compiler = compiler

    def binary(self, workspace: Path) -> Path:
        return workspace / ("main" + binary_suffix())

    def compile_command(self, workspace: Path) -> List[str]:
        return [
            self.compiler,
            str(workspace / self.source_name),
            "-O2",
            "-std=c++17",
            "-o",
            str(self.binary(workspace)),
        ]

    def run_command(self, workspace: Path) -> List[str]:
        return [str(self.binary(workspace))]
