# cable/protocol/errors.py

class ProtocolError(Exception):
    """Base for protocol-level failures (framing/parse/frame semantics)."""

class FrameDecodeError(ProtocolError):
    """Inbound text is not a JSON object."""

    def __init__(self, reason: str, raw: str):
        super().__init__(f"undecodable frame ({reason}): {raw[:200]!r}")
        self.reason = reason
        self.raw = raw

class UnknownFrameType(ProtocolError):
    """Control frame carries a `type` this client does not know."""

    def __init__(self, frame_type: object, frame: dict):
        super().__init__(f"unknown control frame type {frame_type!r}")
        self.frame_type = frame_type
        self.frame = frame
