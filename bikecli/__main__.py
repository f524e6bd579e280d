from bikecli.cli import main

main()
