import math
from numbers import Real


class BoundingBoxError(ValueError):
    """ The value given is not a valid bounding box. """


class BoundingBox:
    """
    A spatial extent in degrees, ordered west, south, east, north.
    Instances are only built through check(), so a BoundingBox is always valid.
    """
    __slots__ = ('west', 'south', 'east', 'north')

    def __init__(self, west, south, east, north):
        self.west = west
        self.south = south
        self.east = east
        self.north = north

    @classmethod
    def check(cls, value):
        """
        Validates a bounding box given as a BoundingBox or a sequence of four numbers.

        >>> BoundingBox.check([3.78, 43.55, 4.04, 43.65]).as_list()
        [3.78, 43.55, 4.04, 43.65]

        :raises BoundingBoxError: when the value is malformed.
        """
        if isinstance(value, BoundingBox):
            return value
        if isinstance(value, (str, bytes)) or not hasattr(value, '__len__'):
            raise BoundingBoxError("bounding box must be a sequence of 4 numbers, got %r" % (value,))
        if len(value) != 4:
            raise BoundingBoxError("bounding box must have 4 bounds, got %d" % len(value))
        for bound in value:
            if isinstance(bound, bool) or not isinstance(bound, Real) or not math.isfinite(bound):
                raise BoundingBoxError("bounding box bounds must be finite numbers, got %r" % (bound,))
        west, south, east, north = value
        for name, lon in (('west', west), ('east', east)):
            if not -180 <= lon <= 180:
                raise BoundingBoxError("%s bound %r is outside [-180, 180]" % (name, lon))
        for name, lat in (('south', south), ('north', north)):
            if not -90 <= lat <= 90:
                raise BoundingBoxError("%s bound %r is outside [-90, 90]" % (name, lat))
        if west > east:
            raise BoundingBoxError("west bound %r is east of east bound %r" % (west, east))
        if south > north:
            raise BoundingBoxError("south bound %r is north of north bound %r" % (south, north))
        return cls(west, south, east, north)

    def as_list(self):
        return [self.west, self.south, self.east, self.north]

    def __iter__(self):
        return iter(self.as_list())

    def __eq__(self, other):
        return isinstance(other, BoundingBox) and self.as_list() == other.as_list()

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(tuple(self.as_list()))

    def __repr__(self):
        return "BoundingBox(%r, %r, %r, %r)" % tuple(self.as_list())
