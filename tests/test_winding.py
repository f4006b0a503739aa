"""Test polygon clipping and area calculations."""
import pytest

from srctools.math import FrozenVec

from bspdecomp.records import Brush, BrushSide, BspData, OccluderPoly
from bspdecomp.winding import MAX_COORD, Winding
from helpers import MapBuilder, assert_vec, square


CLIP_PLANES = [
    ((1, 0, 0), 0.0),
    ((1, 0, 0), 32.0),
    ((-1, 0, 0), 60.0),
    ((0, 1, 0), -16.0),
    ((0.6, 0.8, 0), 10.0),
    ((0.6, 0.8, 0), -90.0),
    ((1, 0, 0), 500.0),
    ((1, 0, 0), -500.0),
]


def test_degenerate() -> None:
    """Fewer than 3 points is an empty winding."""
    assert Winding.from_points([]).is_empty
    wind = Winding.from_points([FrozenVec(1, 2, 3), FrozenVec(4, 5, 6)])
    assert wind is Winding.EMPTY
    assert wind.area() == 0.0
    assert len(wind) == 0
    assert wind.normal() == FrozenVec()
    assert wind.bbox() == (FrozenVec(), FrozenVec())
    assert wind.clip_plane(FrozenVec(1, 0, 0), 0).is_empty
    assert wind.clip(Winding.from_points(square(0, 0, 1, 1, 0)), FrozenVec(0, 0, 1)).is_empty


def test_area() -> None:
    """Test computing the area of simple polygons."""
    assert Winding.from_points(square(-64, -64, 64, 64, 12)).area() == pytest.approx(128 * 128)
    assert Winding.from_points(square(0, 0, 32, 8, -40)).area() == pytest.approx(256)
    # Winding order doesn't affect area.
    assert Winding.from_points(square(0, 0, 32, 8, -40)[::-1]).area() == pytest.approx(256)
    triangle = Winding.from_points([
        FrozenVec(0, 0, 0), FrozenVec(0, 10, 0), FrozenVec(0, 0, 10),
    ])
    assert triangle.area() == pytest.approx(50)


def test_center_bbox() -> None:
    """Test the center and bounding box."""
    wind = Winding.from_points(square(-16, 0, 48, 32, 8))
    assert_vec(wind.center(), 16, 16, 8)
    mins, maxs = wind.bbox()
    assert_vec(mins, -16, 0, 8)
    assert_vec(maxs, 48, 32, 8)
    assert list(wind) == square(-16, 0, 48, 32, 8)


@pytest.mark.parametrize('x, y, z', [
    (1, 0, 0), (-1, 0, 0),
    (0, 1, 0), (0, -1, 0),
    (0, 0, 1), (0, 0, -1),
    (0.6, 0.8, 0), (0, -0.6, 0.8),
])
def test_from_plane(x: float, y: float, z: float) -> None:
    """The base winding lies on the plane, faces along the normal and covers the map."""
    normal = FrozenVec(x, y, z)
    wind = Winding.from_plane(normal, 96.0)
    assert len(wind) == 4
    for point in wind:
        assert normal.dot(point) == pytest.approx(96.0)
    assert_vec(wind.normal(), x, y, z)
    assert wind.area() == pytest.approx((2 * MAX_COORD) ** 2)


@pytest.mark.parametrize('normal, dist', CLIP_PLANES)
def test_clip_monotonic(normal: tuple[float, float, float], dist: float) -> None:
    """Clipping can never increase the area."""
    wind = Winding.from_points(square(-64, -64, 64, 64, 0))
    clipped = wind.clip_plane(FrozenVec(normal), dist)
    assert clipped.area() <= wind.area() + 1e-6


@pytest.mark.parametrize('normal, dist', [
    ((1, 0, 0), 64.0),
    ((1, 0, 0), 200.0),
    ((0, -1, 0), 64.0),
    ((0.6, 0.8, 0), 120.0),
    ((0, 0, 1), 0.0),
])
def test_clip_idempotent(normal: tuple[float, float, float], dist: float) -> None:
    """Clipping by a plane the winding is already behind does nothing."""
    wind = Winding.from_points(square(-64, -64, 64, 64, 0))
    clipped = wind.clip_plane(FrozenVec(normal), dist)
    assert clipped == wind
    assert clipped.clip_plane(FrozenVec(normal), dist) == wind


def test_clip_split() -> None:
    """Test a clip through the middle of a winding."""
    wind = Winding.from_points(square(-64, -64, 64, 64, 0))
    clipped = wind.clip_plane(FrozenVec(1, 0, 0), 16.0)
    assert clipped.area() == pytest.approx(80 * 128)
    mins, maxs = clipped.bbox()
    assert_vec(mins, -64, -64, 0)
    assert_vec(maxs, 16, 64, 0)
    # Clipping the other way keeps the rest.
    other = wind.clip_plane(FrozenVec(-1, 0, 0), -16.0)
    assert other.area() == pytest.approx(48 * 128)
    assert other.area() + clipped.area() == pytest.approx(wind.area())


def test_clip_removed() -> None:
    """A winding entirely in front of the plane is removed."""
    wind = Winding.from_points(square(-64, -64, 64, 64, 0))
    assert wind.clip_plane(FrozenVec(1, 0, 0), -100.0) is Winding.EMPTY


def test_clip_epsilon() -> None:
    """Points just in front of the plane count as lying on it."""
    wind = Winding.from_points(square(-64, -64, 64.005, 64, 0))
    assert wind.clip_plane(FrozenVec(1, 0, 0), 64.0) is wind
    assert wind.clip_plane(FrozenVec(1, 0, 0), 64.0, epsilon=0.001) != wind


def test_clip_winding() -> None:
    """Test intersecting two coplanar windings."""
    up = FrozenVec(0, 0, 1)
    first = Winding.from_points(square(-64, -64, 64, 64, 32))
    second = Winding.from_points(square(0, 0, 128, 128, 32))
    overlap = first.clip(second, up)
    assert overlap.area() == pytest.approx(64 * 64)
    mins, maxs = overlap.bbox()
    assert_vec(mins, 0, 0, 32)
    assert_vec(maxs, 64, 64, 32)
    # The order of points in the clipping winding doesn't matter.
    assert first.clip(Winding(second.points[::-1]), up).area() == pytest.approx(64 * 64)
    # Or if the normal is flipped.
    assert first.clip(second, -up).area() == pytest.approx(64 * 64)

    disjoint = Winding.from_points(square(100, 100, 200, 200, 32))
    assert first.clip(disjoint, up).area() == 0.0


def test_clip_winding_contained() -> None:
    """A winding fully inside another is unchanged."""
    up = FrozenVec(0, 0, 1)
    inner = Winding.from_points(square(-8, -8, 8, 8, 0))
    outer = Winding.from_points(square(-64, -64, 64, 64, 0))
    assert inner.clip(outer, up) == inner
    assert outer.clip(inner, up).area() == pytest.approx(inner.area())


def test_brush_side() -> None:
    """Brush sides are clipped by the other sides of the brush."""
    builder = MapBuilder()
    brush = builder.add_box((-64, -32, 0), (64, 32, 16))
    data = builder.build()
    first_side = data.brushes[brush].first_side

    top = Winding.from_brush_side(data, brush, first_side + 4)
    assert top.area() == pytest.approx(128 * 64)
    mins, maxs = top.bbox()
    assert_vec(mins, -64, -32, 16)
    assert_vec(maxs, 64, 32, 16)
    assert_vec(top.normal(), 0, 0, 1)

    east = Winding.from_brush_side(data, brush, first_side)
    assert east.area() == pytest.approx(64 * 16)
    assert_vec(east.normal(), 1, 0, 0)


def test_brush_side_invalid_plane(caplog: pytest.LogCaptureFixture) -> None:
    """An invalid plane index produces an empty winding."""
    data = BspData(brushes=[Brush(0, 1)], brush_sides=[BrushSide(12)])
    assert Winding.from_brush_side(data, 0, 0).is_empty
    assert 'Invalid plane index 12' in caplog.text


def test_special_surfaces() -> None:
    """Test building windings from occluders and area portals."""
    builder = MapBuilder()
    occ = builder.add_occluder([(square(0, 0, 16, 16, 8), (0, 0, 1), 8.0)])
    portal = builder.add_areaportal(square(0, 0, 32, 64, -8), (0, 0, 1), -8.0)
    data = builder.build()

    occ_poly = data.occluder_polys[data.occluders[occ].first_poly]
    assert Winding.from_occluder(data, occ_poly).area() == pytest.approx(256)
    assert Winding.from_areaportal(data, data.areaportals[portal]).area() == pytest.approx(2048)


@pytest.mark.parametrize('vert_index, message', [
    (-1, 'Invalid vertex -1'),
    (50, 'Invalid vertex 50'),
])
def test_occluder_invalid_vertex(caplog: pytest.LogCaptureFixture, vert_index: int, message: str) -> None:
    """Occluders referencing missing vertices produce an empty winding."""
    builder = MapBuilder()
    builder.add_occluder([(square(0, 0, 16, 16, 8), (0, 0, 1), 8.0)])
    builder.occluder_vert_indices[0] = vert_index
    data = builder.build()

    assert Winding.from_occluder(data, data.occluder_polys[0]) is Winding.EMPTY
    assert message in caplog.text


def test_occluder_invalid_index_range(caplog: pytest.LogCaptureFixture) -> None:
    """Polygons running outside the vertex index list produce an empty winding."""
    builder = MapBuilder()
    builder.add_occluder([(square(0, 0, 16, 16, 8), (0, 0, 1), 8.0)])
    data = builder.build()

    assert Winding.from_occluder(data, OccluderPoly(-1, 4, 0)).is_empty
    assert 'Invalid occluder vertex index: -1' in caplog.text
    assert Winding.from_occluder(data, OccluderPoly(2, 4, 0)).is_empty
    assert 'Invalid occluder vertex index: 4' in caplog.text


@pytest.mark.parametrize('brush_index, side_index, message', [
    (0, 6, 'Invalid brush side index: 6'),
    (0, -1, 'Invalid brush side index: -1'),
    (3, 0, 'Invalid brush index: 3'),
    (-1, 0, 'Invalid brush index: -1'),
])
def test_brush_side_invalid_index(
    caplog: pytest.LogCaptureFixture,
    brush_index: int, side_index: int, message: str,
) -> None:
    """Brush sides which don't exist produce an empty winding."""
    builder = MapBuilder()
    builder.add_box((-64, -32, 0), (64, 32, 16))
    data = builder.build()

    assert Winding.from_brush_side(data, brush_index, side_index) is Winding.EMPTY
    assert message in caplog.text
