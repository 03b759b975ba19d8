from cable.protocol import ActionCable, CableStatus

__all__ = ["ActionCable", "CableStatus"]
