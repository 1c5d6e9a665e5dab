from setuptools import find_packages
from setuptools import setup


def main():
    setup(
        name="wfcoal",
        version="0.1.0",
        description=(
            "Coalescent simulation of a haploid Wright-Fisher population "
            "with homologous gene transfer"
        ),
        license="GPLv3+",
        python_requires=">=3.8",
        packages=find_packages(include=["wfcoal", "wfcoal.*"]),
        install_requires=["numpy>=1.20", "tskit>=0.5", "daiquiri"],
        extras_require={
            "test": ["pytest"],
            "dev": ["attrs", "tqdm", "matplotlib", "pandas", "scipy"],
        },
        entry_points={"console_scripts": ["wfcoal=wfcoal.cli:wfcoal_main"]},
    )


if __name__ == "__main__":
    main()
