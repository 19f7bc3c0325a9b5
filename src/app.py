# src/app.py          <-- keep it at the top level of the ZIP
# Handler path:  app.handler
#
# Zip deployments put `src/` at the root of the archive, so the Lambda runtime
# imports this module; the real handler lives in the package.

from unifi_event_receiver.app import handler

__all__ = ["handler"]
