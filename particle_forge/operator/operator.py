# Base class for all operators

class Operator:
    """
    Base class for all operators
    """

    def __call__(self, *args, **kwargs):
        """
        Apply the operator to its inputs. Operators enqueue kernels on the
        current Warp stream and return the (possibly rotated) buffers.
        """
        raise NotImplementedError
