# Compile generated module source with Warp

import ast
import hashlib
import importlib.util
import logging
import os
import sys
import tempfile

import warp as wp

from particle_forge.error import KernelCompileError

logger = logging.getLogger(__name__)

CACHE_ENV_VAR = "PARTICLE_FORGE_CACHE"


def default_cache_dir() -> str:
    path = os.environ.get(CACHE_ENV_VAR)
    if path:
        return path
    return os.path.join(tempfile.gettempdir(), "particle_forge")


class KernelLoader:
    """
    Write generated modules to a cache directory keyed by their content
    hash, import them and force Warp to build them for a device.

    Warp reads kernel source through inspect, so generated modules have to
    live in real files.
    """

    def __init__(self, cache_dir: str = None):
        self.cache_dir = cache_dir if cache_dir is not None else default_cache_dir()
        os.makedirs(self.cache_dir, exist_ok=True)

    @staticmethod
    def check(source: str):
        """
        Structural check of the assembled module
        """
        try:
            ast.parse(source)
        except SyntaxError as e:
            raise KernelCompileError(
                "Generated kernel has a syntax error at line {}: {}".format(e.lineno, e.msg),
                source,
            ) from e

    def module_name(self, source: str) -> str:
        digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]
        return "particle_forge_kernel_{}".format(digest)

    def write(self, source: str) -> str:
        path = os.path.join(self.cache_dir, self.module_name(source) + ".py")
        if not os.path.exists(path):
            tmp_path = "{}.{}.tmp".format(path, os.getpid())
            with open(tmp_path, "w") as f:
                f.write(source)
            os.replace(tmp_path, path)
        return path

    def load(self, source: str, device=None):
        """
        Import the module for source and build it, returns the module
        """
        self.check(source)
        name = self.module_name(source)
        path = self.write(source)

        # Import
        module = sys.modules.get(name)
        if module is None:
            spec = importlib.util.spec_from_file_location(name, path)
            module = importlib.util.module_from_spec(spec)
            sys.modules[name] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                del sys.modules[name]
                raise KernelCompileError(
                    "Generated kernel failed to import: {}".format(e), source
                ) from e

        # Build
        try:
            wp.load_module(module, device=device)
        except Exception as e:
            raise KernelCompileError(
                "Warp failed to compile the generated kernel: {}".format(e), source
            ) from e

        logger.info("Compiled kernel module %s from %s", name, path)
        return module
