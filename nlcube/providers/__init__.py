# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""SQL generation backends.

Concrete providers are imported lazily through the factory so that only the
SDK of the configured backend is loaded.
"""

from .base import BaseSqlGenerator
from .factory import ProviderFactory, create_generator

__all__ = [
    "BaseSqlGenerator",
    "ProviderFactory",
    "create_generator",
]
