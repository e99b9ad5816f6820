from __future__ import annotations
from typing import Dict

from ..core.models import Language
from ..settings import Settings
from .base import LanguagePipeline
from .cpp_runner import CppPipeline
from .java_runner import JavaPipeline
from .node_runner import NodePipeline
from .python_runner import PythonPipeline


def build_pipelines(settings: Settings) -> Dict[Language, LanguagePipeline]:
    return {
        Language.CPP: CppPipeline(compiler=settings.cpp_compiler),
        Language.JAVA: JavaPipeline(javac=settings.java_compiler, java=settings.java_runtime),
        Language.PYTHON: PythonPipeline(python_bin=settings.python_bin),
        Language.NODE: NodePipeline(node_bin=settings.node_bin),
    }


def get_pipeline(language: Language, settings: Settings) -> LanguagePipeline:
    return build_pipelines(settings)[language]
