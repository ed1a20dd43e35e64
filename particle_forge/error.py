# Exceptions raised while building a simulation


class ParticleForgeError(Exception):
    """
    Base class for all particle forge errors
    """


class SchemaError(ParticleForgeError, ValueError):
    """
    Invalid particle schema, raised before any buffer is allocated
    """


class MissingRequiredField(SchemaError):
    pass


class UnsupportedType(SchemaError):
    pass


class DuplicateField(SchemaError):
    pass


class InvalidFieldName(SchemaError):
    pass


class ConfigurationError(ParticleForgeError, ValueError):
    """
    Invalid spatial, field, uniform or rule configuration
    """


class KernelCompileError(ParticleForgeError, RuntimeError):
    """
    The assembled kernel failed to parse or compile. The full module
    source is kept on the exception so the offending fragment can be found.
    """

    def __init__(self, message: str, source: str):
        super().__init__(message)
        self.source = source

    def __str__(self):
        numbered = "\n".join(
            "{:4d} | {}".format(i + 1, line)
            for i, line in enumerate(self.source.splitlines())
        )
        return "{}\n\n--- kernel source ---\n{}".format(self.args[0], numbered)
