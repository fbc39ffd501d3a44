# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Sparse feature matrices.

Modules:
  - vector: FeatureNode and vector construction from Python sources
  - core: the FeatureMatrix value and Problem preparation
  - codec: the `<label> <index>:<value> ...` text format
"""
