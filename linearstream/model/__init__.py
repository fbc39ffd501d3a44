# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Trained linear models.

Modules:
  - solver: solver types and the Solver parameter container
  - storage: heap and mmap-backed weight storage
  - core: the Model value, training entry point and prediction stream
  - codec: liblinear's model text format
"""
