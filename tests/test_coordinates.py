import numpy as np
import pytest
import pyrr

from cal3d.coordinates import (
    convert_axes,
    convert_position,
    convert_rotation,
    flip_v,
    flip_winding,
    local_transform,
    scale_position,
)


def test_convert_axes_swaps_y_and_z_and_negates_new_z():
    np.testing.assert_allclose(np.asarray(convert_axes((1.0, 2.0, 3.0))), [1.0, 3.0, -2.0])


def test_convert_axes_twice_is_not_identity():
    twice = convert_axes(convert_axes((1.0, 2.0, 3.0)))
    np.testing.assert_allclose(np.asarray(twice), [1.0, -2.0, -3.0])


def test_scale_position():
    np.testing.assert_allclose(np.asarray(scale_position((1.0, -2.0, 0.5), 4.0)), [4.0, -8.0, 2.0])


def test_convert_position_scales_then_converts():
    np.testing.assert_allclose(np.asarray(convert_position((1.0, 2.0, 3.0), 2.0)), [2.0, 6.0, -4.0])


@pytest.mark.parametrize("q", [
    (0.0, 0.0, 0.0, 1.0),
    (0.5, -0.5, 0.5, 0.5),
    (0.1, 0.2, 0.3, 0.927),
])
def test_convert_rotation(q):
    converted = np.asarray(convert_rotation(q))
    assert converted[3] == -q[3]
    np.testing.assert_allclose(converted[:3], np.asarray(convert_axes(q[:3])))


def test_flip_v():
    assert flip_v((0.25, 0.75)) == (0.25, -0.75)


def test_flip_winding():
    assert flip_winding(0, 1, 2) == (0, 2, 1)


def test_local_transform_puts_translation_in_last_row():
    matrix = np.asarray(local_transform((1.0, 2.0, 3.0), (0.0, 0.0, 0.0, -1.0)))
    np.testing.assert_allclose(matrix[3, :3], [1.0, 2.0, 3.0])
    np.testing.assert_allclose(matrix[:3, :3], np.identity(3), atol=1e-7)


def test_local_transform_translation_is_independent_of_rotation():
    matrix = np.asarray(local_transform((4.0, 5.0, 6.0), (0.0, 0.7071068, 0.0, 0.7071068)))
    np.testing.assert_allclose(matrix[3, :3], [4.0, 5.0, 6.0], atol=1e-6)
    assert matrix[3, 3] == pytest.approx(1.0)


def test_local_transform_rotates_row_vectors_like_the_quaternion():
    s = np.sin(np.pi / 4)
    rotation = np.array([0.0, s, 0.0, -s])
    matrix = np.asarray(local_transform((0.0, 0.0, 0.0), rotation))
    for axis in np.identity(3):
        rotated = np.append(axis, 1.0) @ matrix
        np.testing.assert_allclose(
            rotated[:3], pyrr.quaternion.apply_to_vector(rotation, axis), atol=1e-6
        )
    np.testing.assert_allclose((np.array([1.0, 0.0, 0.0, 1.0]) @ matrix)[:3], [0.0, 0.0, 1.0], atol=1e-6)
