"""
===============================================================================
ABSLOC - Absolute Localization Aiding for EKF State Estimation
===============================================================================
Measurement-update model for absolute-position sensors (GPS, motion capture,
barometer-like aiding sources) fused into an Extended Kalman Filter that
estimates a robot pose together with a map of landmarks.

Subpackages:
    core        -- Quaternion math, constants, errors, fixed-size buffers
    navigation  -- Sensor model, filter, robot, map and hardware sources
    simulation  -- Scenario runner and plotting utilities
===============================================================================
"""

__version__ = "0.1.0"
