"""
An OpenCL context and in-order command queue bound to one device.
"""

from logging import getLogger

import numpy as np
import pyopencl as cl

from .errors import ContextCreationError, call_site, error_code, safe_call
from .resources import ResourceKind, ResourceStack

logger = getLogger(__name__)


ACCESS_FLAGS = {
    "read-only": cl.mem_flags.READ_ONLY,
    "write-only": cl.mem_flags.WRITE_ONLY,
    "read-write": cl.mem_flags.READ_WRITE,
}


def access_flags(access):
    try:
        return ACCESS_FLAGS[access]
    except KeyError:
        raise ValueError(
            f"unknown buffer access {access}, must be [{'|'.join(ACCESS_FLAGS)}]"
        )


class ComputeContext:
    """
    Owns a context and an in-order command queue on a single device.

    Both objects, and every buffer created through this class, are
    registered on the `ResourceStack` given to `create`, and are released
    when that stack closes. Operations enqueued on the queue execute in
    submission order; no out-of-order flag is ever requested.
    """

    def __init__(self, device, context, queue, resources: ResourceStack):
        self.device = device
        self.context = context
        self.queue = queue
        self.resources = resources

    @classmethod
    def create(cls, device, resources: ResourceStack):
        """
        Create a context and queue for `device`, registering both.

        Raises `ContextCreationError` if the device is invalid, or if the
        platform rejects the context or queue properties.
        """
        try:
            context = resources.register(cl.Context([device]), ResourceKind.CONTEXT)
        except cl.Error as e:
            raise ContextCreationError(
                f"context creation failed: {e}", error_code(e), *call_site()
            ) from e

        try:
            queue = resources.register(
                cl.CommandQueue(context, device=device), ResourceKind.QUEUE
            )
        except cl.Error as e:
            raise ContextCreationError(
                f"command queue creation failed: {e}", error_code(e), *call_site()
            ) from e

        logger.info(f"create context and in-order queue on {device.name.strip()}")
        compute = cls(device, context, queue, resources)
        resources.defer(compute.detach)
        return compute

    def upload(self, host_array, access="read-only"):
        """
        Create a device buffer initialized with the contents of `host_array`.
        """
        flags = access_flags(access) | cl.mem_flags.COPY_HOST_PTR
        buffer = safe_call(cl.Buffer, self.context, flags, hostbuf=host_array)
        logger.debug(f"upload {host_array.nbytes} bytes ({access})")
        return self.resources.register(buffer, ResourceKind.BUFFER)

    def allocate(self, count, dtype, access="write-only"):
        """
        Create an uninitialized device buffer of `count` elements of `dtype`.
        """
        if count <= 0:
            raise ValueError("buffer size must be positive")
        nbytes = count * np.dtype(dtype).itemsize
        buffer = safe_call(cl.Buffer, self.context, access_flags(access), size=nbytes)
        logger.debug(f"allocate {nbytes} bytes ({access})")
        return self.resources.register(buffer, ResourceKind.BUFFER)

    def download(self, buffer, host_array):
        """
        Copy a device buffer into `host_array`, blocking until it completes.
        """
        safe_call(cl.enqueue_copy, self.queue, host_array, buffer, is_blocking=True)
        return host_array

    def finish(self):
        safe_call(self.queue.finish)

    def detach(self):
        """
        Drop the references to the context and queue, leaving the resource
        stack with the last ones.
        """
        self.context = None
        self.queue = None
