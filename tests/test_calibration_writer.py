from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

import numpy as np
import pytest

from camsys.calibration import read_calibration_file, write_calibration_file
from camsys.camera_system import CameraSystem, SystemType
from camsys.core.camera import CameraInfo, IntrinsicParam, intrinsics_from_dict
from camsys.core.distortion import LensDistortionModel
from camsys.core.rigid_body import euler_rotation_matrix
from camsys.errors import CalibrationWriteError


def _system(system_type: SystemType = SystemType.DICE) -> CameraSystem:
    left = CameraInfo(
        image_height=1536,
        image_width=2048,
        lens_distortion_model=LensDistortionModel.OPENCV_DIS,
        id="left",
        intrinsics=intrinsics_from_dict(
            {
                IntrinsicParam.CX: 1023.7,
                IntrinsicParam.CY: 767.1,
                IntrinsicParam.FX: 4123.456789,
                IntrinsicParam.FY: 4124.1,
                IntrinsicParam.K1: -0.1234567890123,
                IntrinsicParam.T1: 0.001,
            }
        ),
        pixel_depth=12,
        lens="35 mm",
        comments="left of rig",
    )
    right = CameraInfo(
        image_height=1536,
        image_width=2048,
        lens_distortion_model=LensDistortionModel.K1R2_K2R4_K3R6,
        id="right",
        intrinsics=intrinsics_from_dict(
            {IntrinsicParam.CX: 1020.0, IntrinsicParam.CY: 770.0, IntrinsicParam.FX: 4100.0, IntrinsicParam.FY: 4101.0}
        ),
        tx=-201.3,
        tz=1.0 / 3.0,
        rotation_matrix=euler_rotation_matrix(0.01, 0.27, -0.003),
    )
    return CameraSystem(
        [left, right],
        system_type,
        user_6_param_transform=[0.0, 0.1, 0.2, 1.0, 2.0, 3.0],
        user_4x4_param_transform=np.diag([1.0, 2.0, 3.0, 1.0]),
    )


def _parameters(plist: ET.Element) -> dict[str, str]:
    return {p.get("name"): p.get("value") for p in plist.findall("Parameter")}


def test_written_file_reads_back_identically(tmp_path: Path):
    system = _system()
    path = write_calibration_file(system, tmp_path / "cal.xml")
    loaded = read_calibration_file(path)

    assert loaded.system_type is SystemType.DICE
    assert loaded.num_cameras == 2
    for a, b in zip(system.cameras, loaded.cameras):
        assert a.id == b.id
        assert a.image_height == b.image_height
        assert a.image_width == b.image_width
        assert a.lens_distortion_model is b.lens_distortion_model
        assert a.intrinsics == b.intrinsics
        assert (a.tx, a.ty, a.tz) == (b.tx, b.ty, b.tz)
        np.testing.assert_array_equal(a.rotation_matrix, b.rotation_matrix)
        assert a.pixel_depth == b.pixel_depth
        assert a.lens == b.lens
        assert a.comments == b.comments
    assert loaded.user_6_param_transform == system.user_6_param_transform
    np.testing.assert_array_equal(loaded.user_4x4_param_transform, system.user_4x4_param_transform)


def test_rewrite_is_byte_identical(tmp_path: Path):
    first = write_calibration_file(_system(), tmp_path / "first.xml")
    second = write_calibration_file(read_calibration_file(first), tmp_path / "second.xml")
    assert first.read_bytes() == second.read_bytes()


def test_method_delegates_to_writer(tmp_path: Path):
    system = _system()
    path = system.write_calibration_file(tmp_path / "cal.xml")
    loaded = CameraSystem.from_calibration_file(path)
    assert [c.id for c in loaded.cameras] == ["left", "right"]


def test_written_layout(tmp_path: Path):
    path = write_calibration_file(_system(), tmp_path / "cal.xml")
    root = ET.parse(path).getroot()
    assert root.tag == "ParameterList"
    top = _parameters(root)
    assert top["DICe_XML_Calibration_File"] == "true"
    assert top["system_type_3D"] == "DICE"
    assert top["user_6_param_transform"] == "{ 0.0, 0.1, 0.2, 1.0, 2.0, 3.0 }"

    groups = {g.get("name"): g for g in root.findall("ParameterList")}
    assert set(groups) == {"CAMERA 0", "CAMERA 1", "user_4x4_param_transform"}

    left = _parameters(groups["CAMERA 0"])
    # zero-valued intrinsics and translations are omitted
    assert "K2" not in left
    assert "FS" not in left
    assert "TX" not in left
    assert left["T1"] == "0.001"
    assert left["IMAGE_HEIGHT_WIDTH"] == "{ 1536, 2048 }"
    assert left["LENS_DISTORTION_MODEL"] == "OPENCV_DIS"
    assert left["PIXEL_DEPTH"] == "12"

    right = _parameters(groups["CAMERA 1"])
    assert right["TX"] == "-201.3"
    assert float(right["TZ"]) == 1.0 / 3.0
    assert "PIXEL_DEPTH" not in right
    assert "LENS" not in right
    # rotations are always written as a matrix
    assert "ALPHA" not in right
    rotation = groups["CAMERA 1"].find("ParameterList[@name='rotation_3x3_matrix']")
    assert rotation is not None
    assert set(_parameters(rotation)) == {"ROW 0", "ROW 1", "ROW 2"}


def test_euler_input_is_written_as_matrix(tmp_path: Path):
    info = CameraInfo(image_height=10, image_width=20, id="c").with_euler_angles(3.0, -4.0, 5.0)
    path = write_calibration_file(CameraSystem([info], SystemType.GENERIC_SYSTEM), tmp_path / "cal.xml")
    text = path.read_text(encoding="utf-8")
    assert 'name="ALPHA"' not in text
    assert 'name="rotation_3x3_matrix"' in text
    np.testing.assert_array_equal(read_calibration_file(path).camera(0).rotation_matrix, info.rotation_matrix)


def test_unknown_system_type_is_not_written(tmp_path: Path):
    with pytest.raises(CalibrationWriteError):
        write_calibration_file(_system(SystemType.UNKNOWN_SYSTEM), tmp_path / "cal.xml")
    assert not (tmp_path / "cal.xml").exists()
