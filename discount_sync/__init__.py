"""Store discount synchronization between the RP point-of-sale and CresceVendas."""

import logging

__version__ = "1.0.0"

# Custom TRACE level, available to every module as soon as the package is imported
logging.TRACE = 5
logging.addLevelName(logging.TRACE, "TRACE")


def trace_method(self, msg, *args, **kwargs):
    if self.isEnabledFor(logging.TRACE):
        self._log(logging.TRACE, msg, args, **kwargs)


logging.Logger.trace = trace_method
