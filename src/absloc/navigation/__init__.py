"""
===============================================================================
ABSLOC - Navigation Subsystem
===============================================================================
Absolute-position aiding for an EKF that estimates robot pose plus map.

Modules:
    gaussian          -- Pre-allocated Measurement / Expectation / Innovation
    ekf               -- Global Extended Kalman Filter with indirect correction
    map               -- State allocation for robot and landmarks
    robot             -- Robot pose block (position + quaternion)
    hardware          -- Raw reading interface and buffered hardware source
    sensors           -- Simulated absolute-position source (GPS / mocap)
    reference_frame   -- Robust seed estimate of the sensor frame origin
    jacobians         -- Measurement and innovation Jacobians
    sensor_model      -- Sensor model base, frame origin, measurement shapes
    absloc            -- Absolute localization sensor model
===============================================================================
"""
