from setuptools import setup, find_packages

with open("requirements.txt") as f:
    required_packages = f.read().splitlines()

setup(
    name="primspec",
    version="0.1",
    packages=find_packages(include=["primspec", "primspec.*"]),
    description="Primordial curvature and tensor power spectra from an "
    "analytic parametrisation or from single-field inflation",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    license="LGPL",
    install_requires=required_packages,
    extras_require={"test": ["pytest"]},
    classifiers=[
        "Environment :: Console",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Astronomy",
        "License :: OSI Approved :: GNU Lesser General Public License"
        " v3 (LGPLv3)",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
)
