from .geo import haversine_distance

__all__ = ["haversine_distance"]
