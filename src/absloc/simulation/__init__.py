"""
===============================================================================
ABSLOC - Simulation Subsystem
===============================================================================
Closed-loop scenarios for the absolute localization model.

Modules:
    scenario    -- Truth trajectory, simulated source and filter loop
    plot_utils  -- Position error and NIS plots from scenario telemetry
===============================================================================
"""
