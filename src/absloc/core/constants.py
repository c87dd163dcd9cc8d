"""
===============================================================================
ABSLOC - Constants
===============================================================================
State layout sizes and the numeric constants of the reference-frame seed
estimator. Keeping them in one place means the pose block layout is never
spelled out as bare numbers elsewhere in the code.
===============================================================================
"""

# =============================================================================
# STATE LAYOUT
# =============================================================================
POSITION_SIZE = 3                      # x, y, z (m)
QUATERNION_SIZE = 4                    # qw, qx, qy, qz (scalar first)
POSE_SIZE = POSITION_SIZE + QUATERNION_SIZE
LANDMARK_SIZE = 3                      # Euclidean point landmark

# Slices of a 7-scalar pose block
POSITION_SLICE = slice(0, POSITION_SIZE)
ORIENTATION_SLICE = slice(POSITION_SIZE, POSE_SIZE)

# =============================================================================
# RAW READING LAYOUT
# =============================================================================
# Index 0 of every raw reading holds the timestamp; values follow, then the
# per-component uncertainties when the source reports them.
READING_HEADER_SIZE = 1

# =============================================================================
# REFERENCE FRAME SEED ESTIMATION
# =============================================================================
SEED_INITIAL_MIN_VARIANCE = 1.0e3      # Upper bound for the min-variance scan
SEED_VARIANCE_WINDOW = 2.0             # Keep readings with var < 2 * min_var
