import os

from setuptools import setup

MODULES = [
    "bus",
    "cartridge",
    "config",
    "controller",
    "cpu",
    "headless_run",
    "interrupt",
    "main",
    "nes",
    "ppu",
    "tile_viewer",
    "tracer",
    "utils",
]

# Hot modules compiled in place when NES_CORE_CYTHONIZE=1
HOT_MODULES = ["bus", "ppu", "cpu", "nes"]

ext_modules = []
if os.environ.get("NES_CORE_CYTHONIZE") == "1":
    from Cython.Build import cythonize

    ext_modules = cythonize(
        [f"{name}.py" for name in HOT_MODULES],
        compiler_directives={
            "boundscheck": False,
            "wraparound": False,
            "cdivision": True,
            "language_level": 3,
        },
    )

setup(
    name="nes-core",
    version="0.1.0",
    description="NES emulator core: 6502 CPU, PPU and bus on a shared clock",
    python_requires=">=3.8",
    py_modules=MODULES,
    install_requires=[
        "pysdl2",
        "Pillow>=9.1",  # Image.Resampling
    ],
    extras_require={
        "test": ["pytest"],
        "speedups": ["Cython"],
    },
    entry_points={
        "console_scripts": [
            "nes-core=main:main",
            "nes-headless=headless_run:main",
        ],
    },
    ext_modules=ext_modules,
)
