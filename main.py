#!/usr/bin/env python3
"""
Entry point wrapper for PyInstaller packaging.

Uses absolute imports so the frozen executable and a source checkout start
the exam runner the same way.
"""

import sys
import os

if getattr(sys, 'frozen', False):
    bundle_dir = sys._MEIPASS
else:
    bundle_dir = os.path.dirname(os.path.abspath(__file__))

sys.path.insert(0, bundle_dir)

if __name__ == "__main__":
    from examengine.exam import main
    sys.exit(main())
