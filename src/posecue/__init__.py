"""posecue - heuristic body keypoints and gesture state from live video."""

__version__ = "0.1.0"

from posecue.errors import PoseCueError, MalformedFrameError, PipelineHaltedError, ConfigError
from posecue.frames import RawFrame
from posecue.regions import RegionDetector, Region, RegionSet, SkinThresholds, RegionTemplate
from posecue.keypoints import Keypoint, KeypointName, PoseFrame, synthesize_keypoints
from posecue.history import HistoryWindow, GestureHistory, WindowCapacities
from posecue.classifier import GestureClassifier, GestureState, HandPosition, Posture, Thresholds
from posecue.config import PipelineConfig
from posecue.pipeline import PosePipeline, TickResult, PipelineStats
from posecue.sources import FrameSource, IterableSource, CameraSource
from posecue.recorder import PoseRecorder, PosePlayer
from posecue.profiler import PipelineProfiler
from posecue.metrics import MetricsCollector
