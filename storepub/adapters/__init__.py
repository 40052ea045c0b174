"""Store adapters: one per (platform, delivery mechanism).

- base: capability contract, polling and dry-run helpers
- ios_direct / android_direct: store API clients over an ApiTransport
- ios_fastlane / android_fastlane: fastlane CLI wrappers
- ios_eas / android_eas: EAS Submit wrappers
- factory: adapter selection and the test injection seam
"""

from __future__ import annotations
