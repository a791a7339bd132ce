"""Clinical assistant core.

In-process library composing conversation context tracking, proactive
insights, operator memory, a command interpreter and a rate-limited model
gateway into one session handle (:class:`clinassist.session.AssistantSession`)
consumed by a presentation layer.
"""

__version__ = "0.1.0"
