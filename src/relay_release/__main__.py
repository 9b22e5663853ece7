from relay_release.cli.main import main

main()
