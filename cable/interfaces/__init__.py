from .frame_sink import FrameEvent, FrameSink

__all__ = ["FrameEvent", "FrameSink"]
