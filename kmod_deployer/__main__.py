import sys

from kmod_deployer.main import main


sys.exit(main())
