from setuptools import setup
README = open('README.md', 'r').read()

setup(
      name='natdetector',
      version='0.1.0',
      packages=['natdetector', 'natdetector.stun'],
      provides=['natdetector'],
      install_requires=['Twisted>=19.7'],
      extras_require={'test': ['pytest']},
      python_requires='>=3.7',

      license='MIT',

      description="STUN message codec for NAT behavior discovery",
      classifiers=[
                   'Programming Language :: Python',
                   'Programming Language :: Python :: 3',
                   'Framework :: Twisted',
                   'Intended Audience :: Developers',
                   'Intended Audience :: Information Technology',
                   'Intended Audience :: System Administrators',
                   'License :: OSI Approved :: MIT License',
                   'Operating System :: OS Independent',
                   'Topic :: Internet',
                   'Topic :: System :: Networking',
                   'Topic :: Software Development :: Libraries :: Python Modules',
                   ],
      long_description=README,
      long_description_content_type='text/markdown',
      )
