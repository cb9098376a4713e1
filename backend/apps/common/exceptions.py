"""
HTTP-facing exceptions shared by the API views
"""
from rest_framework.exceptions import APIException


class TurnFailed(APIException):
    """Raised when a chat turn cannot be completed (LLM or persistence failure)"""
    status_code = 502
    default_detail = 'The assistant could not complete this turn'
    default_code = 'turn_failed'


class RateLimitedTurn(APIException):
    """Raised when the LLM provider is rate limiting us"""
    status_code = 429
    default_detail = 'Rate limited, please try again shortly'
    default_code = 'rate_limited'
