from setuptools import setup


def readme():
    with open("README.md") as f:
        return f.read()


setup(
    name="uq_abcsmc",
    version="0.1.0",
    description="ABC-SMC model selection between competing dynamical-system models, with optional Gaussian process emulation",
    long_description=readme(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Operating System :: OS Independent",
    ],
    keywords="approximate bayesian computation model selection gaussian process",
    license="MIT",
    packages=["uq_abcsmc", "uq_abcsmc.abc", "uq_abcsmc.database", "uq_abcsmc.emulation", "uq_abcsmc.utils"],
    install_requires=[
        "numpy",
        "scipy",
        "pandas",
        "torch",
        "gpytorch",
        "botorch",
    ],
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
)
