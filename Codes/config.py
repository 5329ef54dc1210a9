#!/usr/bin/env python3
"""
Configuration Parameters for the WCSim 2D Projection

This file serves as the single source of truth for all projection parameters.
The driver (Projection_Atmospheric_DSNB.py) and every helper module import
their settings from here.
"""

# --- Input Configuration ---
EVENT_TREE = "wcsimT"
EVENT_BRANCH = "wcsimrootevent"
GEOMETRY_TREE = "wcsimGeoT"
GEOMETRY_BRANCH = "wcsimrootgeom"
OPTIONS_TREE = "wcsimRootOptionsT"
OPTIONS_BRANCH = "wcsimrootoptions"
READ_STEP_SIZE = 100           # Events deserialized per uproot chunk
CM_TO_M = 1 / 100.             # WCSim lengths are stored in cm

# --- Toolchain Geometry Configuration ---
WCSIM_GEOMETRY_VERSION = 1
PMT_ENCLOSED_RADIUS = 1.0      # m, tape-measure estimate on the frame
PMT_ENCLOSED_HALFHEIGHT = 1.45 # m
TANK_DETECTOR_ELEMENT = "Tank"
TANK_LOCATION = "Anywhere"
OD_LOCATION = "OD"

ADC_CHANNELS_PER_CARD = 4
ADC_CARDS_PER_CRATE = 20
MT_CHANNELS_PER_CARD = 4
MT_CARDS_PER_CRATE = 20
CAEN_HV_CHANNELS_PER_CARD = 16
CAEN_HV_CARDS_PER_CRATE = 10

# --- MC Truth Loading ---
ALLOW_ZERO_FLAG = True         # Load tracks with flag 0 as well as flag -1
USE_SMEARED_DIGIT_TIME = True  # False: earliest true photon time of the digit
HISTORIC_TRIGGER_OFFSET = 0    # ns

# --- Projection Configuration ---
DATA_MODE = "Normal"           # options: Normal / Charge-Weighted
SAVE_MODE = "PMT-wise"         # options: Geometric / PMT-wise
DIMENSION_X = 151              # geometric image bins
DIMENSION_Y = 101
NPMTS_X = 150                  # PMTs in every barrel row
NPMTS_Y_BARREL = 51            # barrel rows of PMTs
INCLUDE_TOP_BOTTOM = True      # add 25 endcap rows at the top and at the bottom
SIZE_TOP_DRAWING = 0.1
ENDCAP_Z_TOLERANCE = 0.01      # m, geometric endcap classification
LAYOUT_Z_TOLERANCE = 0.001     # m, PMT-wise endcap classification
AXIS_TOLERANCE = 0.0001        # m, PMT lying on a coordinate axis
RHO_SLICE = 0.6666666          # m, radial slice width on the endcaps
NUM_SLICES = 25                # radial slices per endcap
LAYOUT_ROUNDING = 3            # decimals kept on 2D coordinates
PHI_POSITIONS_FILE = "phi_positions.txt"

# --- Hit Time Window ---
TIME_WINDOW_NS = (800., 1200.) # exclusive (min_ns, max_ns)
MIN_CHARGE_FILL = 1e-10        # normalized charge below which times stay 0

# --- Histogram Configuration ---
HIT_TIME_HIST = {'bins': 2000, 'range': (0, 2000)}
PMT_CHARGE_HIST = {'bins': 2000, 'range': (0, 100)}

# --- IBD Selection ---
PDG_NEUTRON = 2112
PDG_POSITRON = -11
PDG_GAMMA = 22
IBD_MAX_ENERGY = 100           # MeV, upper energy for prompt positrons/gammas
MIN_NEUTRONS = 1
MIN_PROMPT = 1
NO_VERTEX = (9999999., 9999999., 9999999.)

# --- Output Configuration ---
OUTPUT_PREFIX = "atmospheric_"
OUTPUT_DIR = "."
CSV_FLOAT_FORMAT = "%g"
WRITE_EVENT_SUMMARY = True

# --- Event Display Configuration ---
SAVE_EVENT_DISPLAYS = False
MAX_EVENT_DISPLAYS = 20
EVENT_DISPLAY_DIR = "event_displays"
