# RuckFusion - sensor fusion and energy expenditure engine for load carriage
# Copyright (C) 2024 RuckFusion Contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Configuration file for RuckFusion.
Contains all constants and tunables used by the fusion pipeline.

Modules read these values with getattr(config, NAME, default), so any of
them can be recalibrated at runtime without touching the code.
"""

# Physical Constants
EARTH_RADIUS_M = 6371000.0  # Mean Earth radius, m

# Unit Conversion
WATTS_TO_KCAL_PER_MIN = 0.01433  # 1 W sustained for one minute, kcal
SECONDS_PER_MINUTE = 60.0

# ============================================================
# Session Validation
# ============================================================

MIN_BODY_MASS_KG = 0.0     # Exclusive lower bound
MAX_BODY_MASS_KG = 250.0
MAX_LOAD_MASS_KG = 100.0   # Load of 0 kg is an unloaded walk and is valid

# ============================================================
# Movement Classification
# ============================================================

MOVEMENT_WINDOW_SECONDS = 10.0      # Rolling window of speed / motion samples
MOVEMENT_DWELL_SECONDS = 4.0        # Candidate must hold this long before a change
MOVEMENT_MIN_SAMPLES = 3            # Fewer samples in window = insufficient data
MOVEMENT_CONFIDENCE_DECAY = 0.9     # Applied per update while data is insufficient

# Speed thresholds, m/s
STATIONARY_MAX_SPEED = 0.5
WALKING_MAX_SPEED = 2.0
JOGGING_MAX_SPEED = 4.0

# Dynamic acceleration (|‖a‖ - 1g|, in g) separating still from moving
# when only motion samples are available
MOTION_STILL_THRESHOLD_G = 0.03

# ============================================================
# Adaptive GPS Sampling
# ============================================================

# Ordered from most accurate to most conservative.
# (accuracy tier, distance filter m, update interval s, battery %/hour)
GPS_TIERS = {
    'high_performance': ('best_for_navigation', 5.0, 0.1, 12.0),
    'balanced': ('best', 7.0, 0.5, 8.0),
    'battery_saver': ('nearest_ten_meters', 10.0, 1.0, 5.0),
    'critical': ('hundred_meters', 15.0, 2.0, 3.0),
}
GPS_TIER_ORDER = ('high_performance', 'balanced', 'battery_saver', 'critical')

# Baseline tier per movement type
MOVEMENT_TIER = {
    'stationary': 'battery_saver',
    'walking': 'balanced',
    'jogging': 'high_performance',
    'running': 'high_performance',
}
DEFAULT_GPS_TIER = 'balanced'       # Used when adaptive sampling is disabled

LOW_BATTERY_LEVEL = 0.20            # Downgrade one tier at or below this level
CRITICAL_BATTERY_LEVEL = 0.10       # Force the critical tier at or below this level
GPS_CONFIG_MIN_HOLD_SECONDS = 5.0   # Minimum time between configuration changes

# ============================================================
# Location Fusion (Kalman, constant velocity in local metres)
# ============================================================

LOCATION_PROCESS_NOISE = 0.5        # White acceleration noise, m/s²
LOCATION_MIN_ACCURACY_M = 3.0       # Floor on measurement noise
LOCATION_MAX_ACCURACY_M = 100.0     # Fixes worse than this are rejected
LOCATION_INITIAL_VELOCITY_VAR = 10.0
LOCATION_MAX_POSITION_VAR = 1.0e6   # Covariance cap, m²
LOCATION_MIN_DT = 1e-6

SIGNAL_GAP_SECONDS = 10.0           # No fix for longer = prediction mode
MAX_SUPPRESSION_SECONDS = 60.0      # Beyond this, accuracy is reported as poor
SUPPRESSION_INFLATION = 4.0         # Covariance multiplier applied at that point
PREDICTION_INTERVAL_SECONDS = 1.0   # Max rate of predicted positions during a gap

# ============================================================
# Elevation Fusion
# ============================================================

BAROMETER_SMOOTHING_WINDOW = 4      # Moving average over 3-5 samples
BAROMETER_STALE_SECONDS = 5.0       # Older pressure data counts as unavailable
CALIBRATION_MAX_GPS_AGE = 5.0       # GPS altitude must be this recent to calibrate
MAX_VERTICAL_SPEED_MPS = 5.0        # Faster barometric steps are clamped
VERTICAL_SPEED_MARGIN_M = 0.5       # Slack added to the clamp for tiny time steps

FUSED_ELEVATION_UNCERTAINTY_M = 1.0
GPS_ELEVATION_MIN_UNCERTAINTY_M = 3.0
GPS_ELEVATION_MAX_UNCERTAINTY_M = 5.0

# Altitude Kalman for GPS-only fallback
KALMAN_ALTITUDE_Q = 0.5
KALMAN_ALTITUDE_MIN_R = 2.0
KALMAN_MIN_DT = 1e-6

# ============================================================
# Grade
# ============================================================

MIN_DISTANCE_FOR_GRADE = 5.0        # Horizontal run needed for one grade sample, m
MAX_GRADE_PERCENT = 45.0            # Clamp bound (±)
GRADE_PRECISION_PERCENT = 0.5
GRADE_SMOOTHING_WINDOW = 5
ELEVATION_NOISE_THRESHOLD_M = 0.5   # Smaller changes do not count toward gain/loss

# ============================================================
# Terrain
# ============================================================

TERRAIN_MULTIPLIERS = {
    'pavement': 1.0,
    'trail': 1.2,
    'gravel': 1.3,
    'grass': 1.25,
    'sand': 2.1,
    'mud': 1.85,
    'snow': 2.5,
    'stairs': 2.0,
}
DEFAULT_TERRAIN = 'trail'

TERRAIN_EVALUATION_INTERVAL = 10.0  # Seconds between classifications
TERRAIN_WINDOW_SECONDS = 10.0
TERRAIN_MIN_MOTION_SAMPLES = 20
TERRAIN_STABLE_EVALUATIONS = 2      # Consecutive wins before a new segment opens
TERRAIN_MIN_CONFIDENCE = 0.6        # Below this the map hint takes over
TERRAIN_AGREEMENT_BOOST = 0.15
TERRAIN_DISAGREEMENT_PENALTY = 0.8
TERRAIN_CONFIDENCE_DECAY = 0.9
TERRAIN_MAX_OVERRIDE_SECONDS = 4 * 3600.0

# Accelerometer magnitude variance bands, g²
TERRAIN_PAVEMENT_MAX_VARIANCE = 0.08
TERRAIN_TRAIL_MAX_VARIANCE = 0.25
TERRAIN_SAND_MAX_VARIANCE = 0.45
TERRAIN_SOFT_SURFACE_MAX_SPEED = 1.2  # High variance below this speed = soft surface

# ============================================================
# Energy Expenditure (Pandolf load carriage equation)
# ============================================================

PANDOLF_K1 = 1.5     # Standing cost per kg body mass, W/kg
PANDOLF_K2 = 2.0     # Load distribution term
PANDOLF_K3 = 1.5     # Speed term, per (m/s)²
PANDOLF_K4 = 0.35    # Grade term, applied to grade in percent

# Temperature factors
COMFORT_TEMPERATURE_RANGE = (5.0, 25.0)
COMFORT_TEMPERATURE_FACTOR = 1.05
EXTREME_TEMPERATURE_RANGE = (-5.0, 30.0)
EXTREME_TEMPERATURE_FACTOR = 1.15

# Altitude factor
ALTITUDE_THRESHOLD_M = 1500.0
ALTITUDE_FACTOR_PER_1000M = 0.10
ALTITUDE_FACTOR_MAX = 1.5

# ============================================================
# Energy Uncertainty
# ============================================================

ENERGY_MODEL_ERROR = 0.05            # Relative 1σ error of the equation (≈ ±10% at 95%)
ENERGY_CONFIDENCE_LEVEL = 0.95
ENERGY_SPEED_SIGMA_MIN = 0.1         # m/s
ENERGY_SPEED_AVERAGING_SECONDS = 10.0
ENERGY_GRADE_SIGMA_FUSED = 1.0       # % grade, barometer fused
ENERGY_GRADE_SIGMA_GPS = 3.0         # % grade, GPS-only altitude
ENERGY_TERRAIN_SIGMA = 0.2           # Multiplier sigma at zero terrain confidence

# Quality multipliers widening the interval
POSITION_DEGRADED_MULTIPLIER = 1.2
POSITION_POOR_MULTIPLIER = 1.5

# ============================================================
# Session / Metrics
# ============================================================

REORDER_WINDOW_SECONDS = 1.0
METRICS_INTERVAL_SECONDS = 1.0      # Snapshots are throttled to this rate
SAMPLE_WAIT_TIMEOUT = 0.5           # Worker wait on the inbox, seconds
INBOX_MAX_SIZE = 10000

# ============================================================
# NMEA Replay
# ============================================================

NMEA_UERE_METERS = 5.0               # Horizontal accuracy = HDOP * UERE
NMEA_VERTICAL_ACCURACY_FACTOR = 1.5  # Vertical accuracy relative to horizontal
NMEA_DEFAULT_HDOP = 1.0
KNOTS_TO_MS = 0.514444

# Visualization
CHART_DPI = 150
CHART_FIGSIZE = (12, 10)

# Savitzky-Golay smoothing for chart series
SAVGOL_WINDOW_LENGTH = 11
SAVGOL_WINDOW_DIVISOR = 5
SAVGOL_POLYORDER = 1
