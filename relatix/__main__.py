from relatix.app import main

main()
