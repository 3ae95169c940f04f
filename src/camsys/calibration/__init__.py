from camsys.calibration.reader import CanonicalProbe, probe_canonical, read_calibration_file
from camsys.calibration.writer import write_calibration_file

__all__ = [
    "CanonicalProbe",
    "probe_canonical",
    "read_calibration_file",
    "write_calibration_file",
]
