from __future__ import annotations
import datetime
from ..config import get_token_ttl_hours

# ``TOKEN_TTL`` is read by the authentication helpers. Reloading this module
# picks up a changed ``TOKEN_TTL_HOURS`` (test setup).

TOKEN_TTL = datetime.timedelta(hours=get_token_ttl_hours())
