from pathlib import Path
from .base import LanguagePipeline

class NodePipeline(LanguagePipeline):
    source_name = "main.js"

    def __init__(self, node_bin: str = "node"):
        self.node_bin = node_bin

    def run_command(self, workspace: Path):
        return [self.node_bin, str(workspace / self.source_name)]
