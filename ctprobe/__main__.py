from ctprobe.cli import main

main()
