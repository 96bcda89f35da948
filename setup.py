from setuptools import setup


def main():
    setup(
        name="clbench",
        version="0.1.0",
        description="Micro-benchmark harness for run-time compiled OpenCL kernels",
        packages=["clbench"],
        package_data=dict(clbench=["kernels/*.cl"]),
        python_requires=">=3.9",
        install_requires=[
            "numpy",
            "pyopencl",
            "pydantic>=2",
            "rich",
        ],
        extras_require=dict(test=["pytest"]),
        entry_points={
            "console_scripts": ["clbench=clbench.main:main"],
        },
    )


if __name__ == "__main__":
    main()
