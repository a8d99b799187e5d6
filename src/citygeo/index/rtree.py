"""
In-memory R-tree over city coordinates.

Boxes inside the tree are plain `(min_lon, min_lat, max_lon, max_lat)`
tuples. Stored points never cross the antimeridian, so neither do node
boxes; crossing query boxes are split into their parts before descent.

- `bulk_build` packs a whole tree with Sort-Tile-Recursive ordering.
- `insert` descends by least enlargement and splits with Guttman's
  quadratic heuristic.
- `delete` removes the entry and condenses underfull nodes on its path,
  reinserting their entries.
- `nearest` is a best-first branch-and-bound search keyed on the smallest
  great-circle distance from the query point to each node box.
"""

import heapq
import itertools
import logging
import math
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from citygeo.models.coordinate import (
    EARTH_RADIUS_M,
    BoundingBox,
    Coordinate,
    bounding_box,
    haversine_distance,
)
from citygeo.models.errors import DuplicateId, InvalidQuery, NotFound

logger = logging.getLogger(__name__)

DEFAULT_FANOUT = 16
MIN_FANOUT = 4
MAX_FANOUT = 64

# node bounds are lowered by this much so rounding never lifts a bound
# above a true distance inside the node
_BOUND_SLACK_M = 1e-6

Box = Tuple[float, float, float, float]


def _area(b: Box) -> float:
    return (b[2] - b[0]) * (b[3] - b[1])


def _margin(b: Box) -> float:
    return (b[2] - b[0]) + (b[3] - b[1])


def _union(a: Box, b: Box) -> Box:
    return (min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3]))


def _union_all(boxes: Iterable[Box]) -> Optional[Box]:
    out = None
    for b in boxes:
        out = b if out is None else _union(out, b)
    return out


def _intersects(a: Box, b: Box) -> bool:
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


def _contains_point(b: Box, lon: float, lat: float) -> bool:
    return b[0] <= lon <= b[2] and b[1] <= lat <= b[3]


def _center(b: Box) -> Tuple[float, float]:
    return ((b[0] + b[2]) / 2.0, (b[1] + b[3]) / 2.0)


def _hav(theta: float) -> float:
    s = math.sin(theta / 2.0)
    return s * s


def _hav_partial(hav_dlon: float, cos_lat: float, lat: float, other_lat: float) -> float:
    # haversine term between (lat, 0) and (other_lat, dlon) given hav(dlon)
    return cos_lat * math.cos(other_lat) * hav_dlon + _hav(lat - other_lat)


def _box_min_distance(lon: float, lat: float, cos_lat: float, box: Box) -> float:
    """Lower bound, in meters, of the distance from a point to any point in box."""
    west, south, east, north = box
    rlat = math.radians(lat)
    if west <= lon <= east:
        if lat < south:
            h = _hav(rlat - math.radians(south))
        elif lat > north:
            h = _hav(rlat - math.radians(north))
        else:
            return 0.0
    else:
        # the closest point lies on the nearer edge meridian
        hav_dlon = min(_hav(math.radians(lon - west)), _hav(math.radians(lon - east)))
        cos_dlon = 1.0 - 2.0 * hav_dlon
        # latitude where that meridian comes closest to the point
        extremum = math.atan2(math.sin(rlat), cos_lat * cos_dlon)
        rsouth = math.radians(south)
        rnorth = math.radians(north)
        if rsouth < extremum < rnorth:
            h = _hav_partial(hav_dlon, cos_lat, rlat, extremum)
        else:
            h = min(
                _hav_partial(hav_dlon, cos_lat, rlat, rsouth),
                _hav_partial(hav_dlon, cos_lat, rlat, rnorth),
            )
    d = 2.0 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, max(0.0, h))))
    return max(0.0, d - _BOUND_SLACK_M)


class _Entry:
    """Leaf slot: one record id and its coordinate."""

    __slots__ = ("record_id", "coordinate", "box")

    def __init__(self, record_id: int, coordinate: Coordinate):
        self.record_id = record_id
        self.coordinate = coordinate
        lon, lat = coordinate.longitude, coordinate.latitude
        self.box: Box = (lon, lat, lon, lat)


class _Node:
    """
    Tree node. Leaf nodes hold _Entry children, internal nodes hold
    _Node children; either way a node owns its children outright.
    """

    __slots__ = ("leaf", "children", "box")

    def __init__(self, leaf: bool, children: Optional[list] = None):
        self.leaf = leaf
        self.children: list = children if children is not None else []
        self.box: Optional[Box] = None
        self.refresh()

    def refresh(self) -> None:
        self.box = _union_all(c.box for c in self.children)


def _str_pack(items: list, fanout: int) -> List[list]:
    """Group items (anything with a .box) into runs of `fanout` by STR order."""
    n = len(items)
    group_count = math.ceil(n / fanout)
    slice_count = math.ceil(math.sqrt(group_count))
    slice_size = slice_count * fanout

    by_lon = sorted(items, key=lambda it: _center(it.box))
    groups: List[list] = []
    for i in range(0, n, slice_size):
        vertical = sorted(
            by_lon[i : i + slice_size], key=lambda it: _center(it.box)[::-1]
        )
        for j in range(0, len(vertical), fanout):
            groups.append(vertical[j : j + fanout])
    return groups


def _iter_entries(node: _Node) -> Iterator[_Entry]:
    stack = [node]
    while stack:
        n = stack.pop()
        if n.leaf:
            yield from n.children
        else:
            stack.extend(n.children)


def _check_fanout(fanout: int) -> int:
    if isinstance(fanout, bool) or not isinstance(fanout, int):
        raise ValueError(f"fanout must be an integer, got {fanout!r}")
    if not MIN_FANOUT <= fanout <= MAX_FANOUT:
        raise ValueError(f"fanout must be in [{MIN_FANOUT}, {MAX_FANOUT}], got {fanout}")
    return fanout


class SpatialIndex:
    """R-tree of (record id, Coordinate) entries."""

    def __init__(self, fanout: int = DEFAULT_FANOUT):
        self._fanout = _check_fanout(fanout)
        self._min_fill = max(2, int(fanout * 0.4))
        self._root: Optional[_Node] = None
        self._height = 0
        self._locations: Dict[int, Coordinate] = {}

    # ---- introspection ----------------------------------------------------

    def __len__(self) -> int:
        return len(self._locations)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._locations

    @property
    def fanout(self) -> int:
        return self._fanout

    @property
    def height(self) -> int:
        return self._height

    def ids(self) -> frozenset:
        return frozenset(self._locations)

    def coordinate_of(self, record_id: int) -> Coordinate:
        try:
            return self._locations[record_id]
        except KeyError:
            raise NotFound(record_id) from None

    # ---- construction -----------------------------------------------------

    @classmethod
    def bulk_build(
        cls,
        entries: Iterable[Tuple[int, Coordinate]],
        fanout: int = DEFAULT_FANOUT,
    ) -> "SpatialIndex":
        index = cls(fanout)
        leaves: List[_Entry] = []
        for record_id, coordinate in entries:
            if record_id in index._locations:
                raise DuplicateId(record_id)
            index._locations[record_id] = coordinate
            leaves.append(_Entry(record_id, coordinate))
        if not leaves:
            return index

        nodes = [_Node(True, group) for group in _str_pack(leaves, fanout)]
        height = 1
        while len(nodes) > 1:
            nodes = [_Node(False, group) for group in _str_pack(nodes, fanout)]
            height += 1
        index._root = nodes[0]
        index._height = height
        logger.debug(
            "Packed %d entries into a tree of height %d (fanout %d)",
            len(leaves),
            height,
            fanout,
        )
        return index

    def insert(self, record_id: int, coordinate: Coordinate) -> None:
        if record_id in self._locations:
            raise DuplicateId(record_id)
        self._insert_entry(_Entry(record_id, coordinate))
        self._locations[record_id] = coordinate

    def _insert_entry(self, entry: _Entry) -> None:
        if self._root is None:
            self._root = _Node(True, [entry])
            self._height = 1
            return
        path = [self._root]
        node = self._root
        while not node.leaf:
            node = self._choose_subtree(node, entry.box)
            path.append(node)
        node.children.append(entry)
        self._adjust_path(path)

    @staticmethod
    def _choose_subtree(node: _Node, box: Box) -> _Node:
        best = None
        best_key = None
        for position, child in enumerate(node.children):
            grown = _union(child.box, box)
            grown_area = _area(grown)
            key = (grown_area - _area(child.box), grown_area, position)
            if best_key is None or key < best_key:
                best, best_key = child, key
        return best

    def _adjust_path(self, path: List[_Node]) -> None:
        sibling = None
        for node in reversed(path):
            if sibling is not None:
                node.children.append(sibling)
                sibling = None
            if len(node.children) > self._fanout:
                sibling = self._split(node)
            node.refresh()
        if sibling is not None:
            self._root = _Node(False, [self._root, sibling])
            self._height += 1

    def _split(self, node: _Node) -> _Node:
        """Quadratic split: `node` keeps one group, the other is returned."""
        children = node.children
        seed_a, seed_b = self._pick_seeds(children)
        group_a = [children[seed_a]]
        group_b = [children[seed_b]]
        box_a = group_a[0].box
        box_b = group_b[0].box
        remaining = [c for i, c in enumerate(children) if i not in (seed_a, seed_b)]

        while remaining:
            if len(group_a) + len(remaining) <= self._min_fill:
                group_a.extend(remaining)
                break
            if len(group_b) + len(remaining) <= self._min_fill:
                group_b.extend(remaining)
                break

            pick = 0
            pick_diff = -1.0
            for i, child in enumerate(remaining):
                diff = abs(
                    (_area(_union(box_a, child.box)) - _area(box_a))
                    - (_area(_union(box_b, child.box)) - _area(box_b))
                )
                if diff > pick_diff:
                    pick, pick_diff = i, diff
            child = remaining.pop(pick)

            grow_a = _area(_union(box_a, child.box)) - _area(box_a)
            grow_b = _area(_union(box_b, child.box)) - _area(box_b)
            key_a = (grow_a, _area(box_a), _margin(_union(box_a, child.box)), len(group_a))
            key_b = (grow_b, _area(box_b), _margin(_union(box_b, child.box)), len(group_b))
            if key_a <= key_b:
                group_a.append(child)
                box_a = _union(box_a, child.box)
            else:
                group_b.append(child)
                box_b = _union(box_b, child.box)

        node.children = group_a
        node.refresh()
        return _Node(node.leaf, group_b)

    @staticmethod
    def _pick_seeds(children: list) -> Tuple[int, int]:
        # most wasteful pair; perimeter breaks ties between degenerate boxes
        best = (0, 1)
        best_key = None
        for i in range(len(children)):
            for j in range(i + 1, len(children)):
                a, b = children[i].box, children[j].box
                u = _union(a, b)
                key = (_area(u) - _area(a) - _area(b), _margin(u))
                if best_key is None or key > best_key:
                    best, best_key = (i, j), key
        return best

    # ---- deletion -----------------------------------------------------------

    def delete(self, record_id: int) -> None:
        coordinate = self._locations.get(record_id)
        if coordinate is None:
            raise NotFound(record_id)
        path, position = self._find_leaf(record_id, coordinate)
        del path[-1].children[position]
        del self._locations[record_id]
        self._condense(path)

    def _find_leaf(self, record_id: int, coordinate: Coordinate) -> Tuple[List[_Node], int]:
        lon, lat = coordinate.longitude, coordinate.latitude
        stack = [[self._root]] if self._root is not None else []
        while stack:
            path = stack.pop()
            node = path[-1]
            if node.leaf:
                for position, entry in enumerate(node.children):
                    if entry.record_id == record_id:
                        return path, position
                continue
            for child in node.children:
                if _contains_point(child.box, lon, lat):
                    stack.append(path + [child])
        raise RuntimeError(f"index entry for id {record_id} is missing from the tree")

    def _condense(self, path: List[_Node]) -> None:
        orphans: List[_Entry] = []
        for depth in range(len(path) - 1, 0, -1):
            node = path[depth]
            parent = path[depth - 1]
            if len(node.children) < self._min_fill:
                parent.children = [c for c in parent.children if c is not node]
                orphans.extend(_iter_entries(node))
            else:
                node.refresh()

        root = self._root
        root.refresh()
        while not root.leaf and len(root.children) == 1:
            root = root.children[0]
            self._height -= 1
        if not root.children:
            self._root = None
            self._height = 0
        else:
            self._root = root

        for entry in sorted(orphans, key=lambda e: e.record_id):
            self._insert_entry(entry)

    # ---- queries ------------------------------------------------------------

    def _search(self, box: Box) -> Iterator[_Entry]:
        if self._root is None or not _intersects(self._root.box, box):
            return
        stack = [self._root]
        while stack:
            node = stack.pop()
            if node.leaf:
                for entry in node.children:
                    if _contains_point(box, entry.box[0], entry.box[1]):
                        yield entry
            else:
                for child in node.children:
                    if _intersects(child.box, box):
                        stack.append(child)

    def bounding_box_query(self, box: BoundingBox) -> Set[int]:
        found: Set[int] = set()
        for part in box.parts():
            for entry in self._search((part.west, part.south, part.east, part.north)):
                found.add(entry.record_id)
        return found

    def within(self, center: Coordinate, radius_meters: float) -> List[Tuple[int, float]]:
        """(id, distance) for every entry within the radius, nearest first."""
        box = bounding_box(center, radius_meters)
        radius = float(radius_meters)
        hits: Dict[int, float] = {}
        for part in box.parts():
            for entry in self._search((part.west, part.south, part.east, part.north)):
                d = haversine_distance(center, entry.coordinate)
                if d <= radius:
                    hits[entry.record_id] = d
        return sorted(hits.items(), key=lambda h: (h[1], h[0]))

    def radius_query(self, center: Coordinate, radius_meters: float) -> Set[int]:
        return {record_id for record_id, _ in self.within(center, radius_meters)}

    def nearest(self, center: Coordinate, k: int) -> List[Tuple[int, float]]:
        """
        The k entries closest to `center` as (id, distance), ascending by
        distance and then by id.
        """
        if isinstance(k, bool) or not isinstance(k, int) or k <= 0:
            raise InvalidQuery(f"k must be a positive integer, got {k!r}")
        if self._root is None:
            return []

        lon, lat = center.longitude, center.latitude
        cos_lat = math.cos(math.radians(lat))
        seq = itertools.count()
        # (distance, 0, seq, node) for nodes, (distance, 1, id, entry) for
        # entries; a node ties before entries of equal distance so all of
        # them are in the heap before the first one is emitted
        heap = [(0.0, 0, next(seq), self._root)]
        # max-heap (negated) of the k best entry distances queued so far
        best: List[float] = []
        results: List[Tuple[int, float]] = []

        while heap and len(results) < k:
            dist, kind, tie, item = heapq.heappop(heap)
            if kind == 1:
                results.append((tie, dist))
                continue
            for child in item.children:
                if item.leaf:
                    d = haversine_distance(center, child.coordinate)
                    if len(best) < k:
                        heapq.heappush(best, -d)
                    elif d < -best[0]:
                        heapq.heapreplace(best, -d)
                    elif d > -best[0]:
                        continue
                    heapq.heappush(heap, (d, 1, child.record_id, child))
                else:
                    bound = _box_min_distance(lon, lat, cos_lat, child.box)
                    if len(best) == k and bound > -best[0]:
                        continue
                    heapq.heappush(heap, (bound, 0, next(seq), child))
        return results

    # ---- consistency --------------------------------------------------------

    def validate(self) -> None:
        """Raise RuntimeError if the tree breaks any structural rule."""
        if self._root is None:
            if self._locations or self._height:
                raise RuntimeError("empty tree with recorded entries")
            return

        seen: Set[int] = set()
        leaf_depths: Set[int] = set()
        stack = [(self._root, 1)]
        while stack:
            node, depth = stack.pop()
            # STR packing may leave one short node per level, so only
            # emptiness and overflow are errors
            if not 0 < len(node.children) <= self._fanout:
                raise RuntimeError(f"node holds {len(node.children)} children")
            if node.box != _union_all(c.box for c in node.children):
                raise RuntimeError("node box is not the union of its children")
            if node.leaf:
                leaf_depths.add(depth)
                for entry in node.children:
                    if entry.record_id in seen:
                        raise RuntimeError(f"id {entry.record_id} appears twice")
                    seen.add(entry.record_id)
                    if self._locations.get(entry.record_id) != entry.coordinate:
                        raise RuntimeError(f"id {entry.record_id} has a stale coordinate")
            else:
                stack.extend((child, depth + 1) for child in node.children)

        if leaf_depths != {self._height}:
            raise RuntimeError(f"leaves at depths {sorted(leaf_depths)}, height {self._height}")
        if seen != set(self._locations):
            raise RuntimeError("tree entries differ from the id table")
