from storepub.cli.app import main

main()
