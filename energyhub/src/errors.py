"""
Exception taxonomy shared by the aggregation pipeline and the device registry.

- TransientFetchError: network failure, timeout, or non-success response
  from the realtime store. Recovered locally (fallback snapshot) in the
  pipeline; surfaced to the caller for registry writes.
- MalformedDataError: a payload, channel value, or timestamp-key that cannot
  be interpreted. Absorbed per record by the pipeline.
- WriteRejectedError: the store refused a device write (permissions,
  validation). Surfaced to the caller, never retried automatically.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-002)

TODO:
- None
"""


class EnergyHubError(Exception):
    """Base class for all energy hub errors."""


class TransientFetchError(EnergyHubError):
    """The store could not be reached or answered with a non-success status."""


class MalformedDataError(EnergyHubError):
    """A value returned by the store could not be interpreted."""


class WriteRejectedError(EnergyHubError):
    """The store rejected a write request."""


class DeviceNotFoundError(WriteRejectedError):
    """A write targeted a device id that does not exist in the store."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device '{device_id}' does not exist")
        self.device_id = device_id
