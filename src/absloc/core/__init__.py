"""
===============================================================================
ABSLOC - Core Utilities
===============================================================================
Shared building blocks used by every other subsystem.

Modules:
    constants        -- State block sizes and seed-estimation constants
    quaternion       -- Quaternion class, rotation and rotation Jacobian
    exceptions       -- Engine error hierarchy
    data_structures  -- Fixed-capacity ring buffer for raw readings
===============================================================================
"""
