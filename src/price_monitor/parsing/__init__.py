"""Free-text request parsing."""

from .intent import IntentParser, IntentParserProtocol, MockIntentParser, ParseResult, create_intent_parser, normalize_parsed

__all__ = ["IntentParser", "IntentParserProtocol", "MockIntentParser", "ParseResult", "create_intent_parser", "normalize_parsed"]
