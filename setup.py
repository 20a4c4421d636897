import setuptools

setuptools.setup(
    name="cabtool",
    version="1.0.0",
    author="The cabtool contributors",
    description=("Firmware caboose metadata placement and lookup"),
    license="Apache Software License",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        'intelhex>=2.2.1',
        'click',
        'PyYAML',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        "console_scripts": ["cabtool=cabtool.main:cabtool"]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Development Status :: 4 - Beta",
        "Topic :: Software Development :: Build Tools",
        "License :: OSI Approved :: Apache Software License",
    ],
)
