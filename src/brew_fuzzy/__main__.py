from .gateway.cli_parser import main

main()
